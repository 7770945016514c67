"""Unit tests for the counselor metrics aggregator."""

from datetime import datetime

import pytest

from alo_insights.fetcher import Snapshot
from alo_insights.metrics import (
    compute_metrics,
    fastest_responder,
    needs_improvement,
    overall_stats,
    response_samples,
    summarize_performance,
    top_performer,
    _student_threads,
)
from alo_insights.models import CounselorMetrics, Message
from alo_insights.windows import round_half_up


NOW = datetime(2026, 10, 19, 12, 0)


def make_snapshot(**collections):
    return Snapshot.from_payload(collections)


def students_for(counselor_id, total, enrolled, prefix):
    return [
        {
            'id': f'{prefix}-{i}',
            'counselor_id': counselor_id,
            'status': 'enrolled' if i < enrolled else 'contacted',
        }
        for i in range(total)
    ]


def three_counselor_snapshot():
    return make_snapshot(
        counselors=[
            {'id': 'A', 'name': 'Alice'},
            {'id': 'B', 'name': 'Bob'},
            {'id': 'C', 'name': 'Chen'},
        ],
        students=students_for('A', 10, 7, 'a') + students_for('C', 4, 1, 'c'),
    )


def test_conversion_rate_scenario():
    """Three counselors: 7 of 10 enrolled, no students, 1 of 4 enrolled."""
    metrics = compute_metrics(three_counselor_snapshot(), now=NOW)
    by_id = {m.id: m for m in metrics}

    assert by_id['A'].conversion_rate == 70
    assert by_id['A'].total_students == 10
    assert by_id['A'].conversions == 7
    assert by_id['B'].conversion_rate == 0
    assert by_id['C'].conversion_rate == 25

    # A has the highest rate, B is not picked
    assert top_performer(metrics).id == 'A'


def test_zero_guard_for_empty_counselor():
    """A counselor with nothing assigned gets zeros, never NaN."""
    snapshot = make_snapshot(counselors=[{'id': 'B', 'name': 'Bob'}])
    m = compute_metrics(snapshot, now=NOW)[0]

    assert m.conversion_rate == 0
    assert m.application_success_rate == 0
    assert m.task_completion_rate == 0
    assert m.avg_response_time == 0
    assert m.total_students == 0
    assert m.satisfaction_score is None


def test_rates_are_bounded():
    """Every rate stays within 0-100."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        students=students_for('A', 3, 3, 's'),
        applications=[
            {'id': 'app1', 'student_id': 's-0', 'status': 'enrolled', 'applied_date': '2026-10-10'},
            {'id': 'app2', 'student_id': 's-1', 'status': 'conditional_offer', 'applied_date': '2026-10-11'},
        ],
        tasks=[
            {'id': 't1', 'assigned_to': 'A', 'status': 'completed'},
            {'id': 't2', 'assigned_to': 'A', 'status': 'pending'},
            {'id': 't3', 'assigned_to': 'A', 'status': 'in_progress'},
        ],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    for rate in (m.conversion_rate, m.application_success_rate, m.task_completion_rate):
        assert 0 <= rate <= 100
    assert m.conversion_rate == 100
    assert m.application_success_rate == 100
    # 1 of 3 tasks completed rounds to 33
    assert m.task_completion_rate == 33


def test_half_percentages_round_up():
    """1 of 8 is 12.5% and 5 of 8 is 62.5%: both round up, not to even."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}, {'id': 'B', 'name': 'Bob'}],
        students=students_for('A', 8, 1, 'a') + students_for('B', 8, 5, 'b'),
    )
    by_id = {m.id: m for m in compute_metrics(snapshot, now=NOW)}

    assert by_id['A'].conversion_rate == 13
    assert by_id['B'].conversion_rate == 63


def test_half_hour_average_rounds_up():
    """Replies after 2h and 3h average 2.5h, reported as 3."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        messages=[
            {'id': 'm1', 'sender_type': 'student', 'conversation_id': 'c1', 'created_date': '2026-10-18T00:00:00'},
            {'id': 'm2', 'sender_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c1',
             'created_date': '2026-10-18T02:00:00'},
            {'id': 'm3', 'sender_type': 'student', 'conversation_id': 'c2', 'created_date': '2026-10-18T04:00:00'},
            {'id': 'm4', 'sender_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c2',
             'created_date': '2026-10-18T07:00:00'},
        ],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    assert m.avg_response_time == 3


def test_overall_averages_round_half_up():
    metrics = [
        CounselorMetrics(id='A', name='Alice', conversion_rate=25, application_success_rate=60,
                         avg_response_time=2),
        CounselorMetrics(id='B', name='Bob', conversion_rate=0, application_success_rate=61,
                         avg_response_time=3),
    ]
    overall = overall_stats(metrics)

    assert overall.avg_conversion_rate == 13
    assert overall.avg_success_rate == 61
    assert overall.avg_response_time == 3


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(12.49) == 12
    assert round_half_up(0) == 0


def test_response_time_uses_nearest_prior_student_message():
    """Student messages at t=0h and t=5h, reply at t=6h: the sample is 1 hour."""
    messages = [
        Message(id='m1', sender_type='student', conversation_id='c1', created_date='2026-10-18T00:00:00'),
        Message(id='m2', sender_type='student', conversation_id='c1', created_date='2026-10-18T05:00:00'),
        Message(id='m3', sender_id='A', sender_type='counselor', conversation_id='c1',
                created_date='2026-10-18T06:00:00'),
    ]
    threads = _student_threads(messages)

    assert response_samples([messages[2]], threads) == [pytest.approx(1.0)]


def test_response_time_ignores_other_threads_and_later_messages():
    """Student messages from other conversations or after the reply do not count."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        messages=[
            {'id': 'm1', 'sender_type': 'student', 'conversation_id': 'c2', 'created_date': '2026-10-18T05:30:00'},
            {'id': 'm2', 'sender_type': 'student', 'conversation_id': 'c1', 'created_date': '2026-10-18T02:00:00'},
            {'id': 'm3', 'sender_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c1',
             'created_date': '2026-10-18T06:00:00'},
            {'id': 'm4', 'sender_type': 'student', 'conversation_id': 'c1', 'created_date': '2026-10-18T07:00:00'},
        ],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    assert m.avg_response_time == 4
    assert m.communications == 1


def test_reply_without_prior_student_message_has_no_sample():
    """A counselor opening a conversation is not a response."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        messages=[
            {'id': 'm1', 'sender_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c1',
             'created_date': '2026-10-18T06:00:00'},
        ],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    assert m.avg_response_time == 0
    assert m.communications == 1


def test_recorded_response_minutes_do_not_count_as_a_reply():
    """An opening message with response_time_minutes set still gives no sample."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}, {'id': 'B', 'name': 'Bob'}],
        messages=[
            {'id': 'm1', 'sender_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c1',
             'created_date': '2026-10-18T06:00:00', 'response_time_minutes': 30},
            {'id': 'm2', 'sender_type': 'student', 'conversation_id': 'c2', 'created_date': '2026-10-18T00:00:00'},
            {'id': 'm3', 'sender_id': 'B', 'sender_type': 'counselor', 'conversation_id': 'c2',
             'created_date': '2026-10-18T05:00:00'},
        ],
    )
    summary = summarize_performance(snapshot, now=NOW)
    by_id = {m.id: m for m in summary.metrics}

    assert by_id['A'].avg_response_time == 0
    assert by_id['B'].avg_response_time == 5
    # only B has real reply samples
    assert summary.fastest_responder == 'B'


def test_message_without_sender_is_credited_to_its_counselor():
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}, {'id': 'B', 'name': 'Bob'}],
        messages=[
            {'id': 'm1', 'sender_type': 'student', 'conversation_id': 'c1', 'created_date': '2026-10-18T00:00:00'},
            {'id': 'm2', 'counselor_id': 'A', 'sender_type': 'counselor', 'conversation_id': 'c1',
             'created_date': '2026-10-18T04:00:00'},
            # an explicit sender wins over counselor_id
            {'id': 'm3', 'sender_id': 'B', 'counselor_id': 'A', 'sender_type': 'counselor',
             'conversation_id': 'c1', 'created_date': '2026-10-18T08:00:00'},
        ],
    )
    by_id = {m.id: m for m in compute_metrics(snapshot, now=NOW)}

    assert by_id['A'].communications == 1
    assert by_id['A'].avg_response_time == 4
    assert by_id['B'].communications == 1
    assert by_id['B'].avg_response_time == 8


def test_threads_match_on_student_without_conversation_id():
    """Messages with no conversation id are threaded by student."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        messages=[
            {'id': 'm1', 'sender_type': 'student', 'student_id': 's1', 'created_date': '2026-10-18T00:00:00'},
            {'id': 'm2', 'sender_type': 'student', 'student_id': 's2', 'created_date': '2026-10-18T05:00:00'},
            {'id': 'm3', 'sender_id': 'A', 'sender_type': 'counselor', 'student_id': 's1',
             'created_date': '2026-10-18T06:00:00'},
        ],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    # s2's message is nearer but belongs to another student
    assert m.avg_response_time == 6


def test_reply_in_conversation_matches_student_only_messages():
    """A reply carrying both ids still finds student messages that carry only a student id."""
    messages = [
        Message(id='m1', sender_type='student', student_id='s1', created_date='2026-10-18T01:00:00'),
        Message(id='m2', sender_id='A', sender_type='counselor', student_id='s1', conversation_id='c1',
                created_date='2026-10-18T03:00:00'),
    ]
    threads = _student_threads(messages)

    assert response_samples([messages[1]], threads) == [pytest.approx(2.0)]


def test_conversation_match_takes_precedence_over_student():
    messages = [
        Message(id='m1', sender_type='student', student_id='s1', conversation_id='c1',
                created_date='2026-10-18T00:00:00'),
        Message(id='m2', sender_type='student', student_id='s1', conversation_id='c2',
                created_date='2026-10-18T05:00:00'),
        Message(id='m3', sender_id='A', sender_type='counselor', student_id='s1', conversation_id='c1',
                created_date='2026-10-18T06:00:00'),
    ]
    threads = _student_threads(messages)

    assert response_samples([messages[2]], threads) == [pytest.approx(6.0)]


def test_time_window_and_intake_filters():
    """Applications outside the window or the intake are not managed."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        students=[{'id': 's1', 'counselor_id': 'A', 'status': 'applied'}],
        applications=[
            {'id': 'recent', 'student_id': 's1', 'status': 'conditional_offer',
             'applied_date': '2026-10-01', 'intake': 'January 2027'},
            {'id': 'recent-other-intake', 'student_id': 's1', 'status': 'rejected',
             'applied_date': '2026-10-05', 'intake': 'September 2027'},
            {'id': 'old', 'student_id': 's1', 'status': 'rejected',
             'applied_date': '2026-01-01', 'intake': 'January 2027'},
            {'id': 'undated', 'student_id': 's1', 'status': 'rejected', 'intake': 'January 2027'},
        ],
        inquiries=[
            {'id': 'i1', 'assigned_to': 'A', 'created_date': '2026-10-15'},
            {'id': 'i2', 'assigned_to': 'A', 'created_date': '2025-10-15'},
        ],
    )

    m = compute_metrics(snapshot, days=30, now=NOW)[0]
    assert m.applications_managed == 2
    assert m.application_success_rate == 50
    assert m.inquiries_handled == 1
    assert m.active_students == 1

    m = compute_metrics(snapshot, days=30, intake='January 2027', now=NOW)[0]
    assert m.applications_managed == 1
    assert m.application_success_rate == 100

    m = compute_metrics(snapshot, days=365, now=NOW)[0]
    assert m.applications_managed == 3


def test_dangling_references_are_ignored():
    """Records pointing at unknown counselors or students simply do not match."""
    snapshot = make_snapshot(
        counselors=[{'id': 'A', 'name': 'Alice'}],
        students=[{'id': 's1', 'counselor_id': 'ghost', 'status': 'enrolled'}],
        applications=[{'id': 'app1', 'student_id': 'missing', 'status': 'enrolled',
                       'applied_date': '2026-10-10'}],
    )
    m = compute_metrics(snapshot, now=NOW)[0]

    assert m.total_students == 0
    assert m.applications_managed == 0


def test_top_performer_tie_goes_to_first_seen():
    """Equal conversion rates: the first counselor in input order wins."""
    metrics = [
        CounselorMetrics(id='first', name='First', conversion_rate=60),
        CounselorMetrics(id='second', name='Second', conversion_rate=60),
        CounselorMetrics(id='third', name='Third', conversion_rate=10),
    ]
    assert top_performer(metrics).id == 'first'
    assert top_performer([]) is None


def test_fastest_responder_skips_counselors_without_data():
    """A zero response time means no data, not the fastest reply."""
    metrics = [
        CounselorMetrics(id='none', name='No data', avg_response_time=0),
        CounselorMetrics(id='slow', name='Slow', avg_response_time=12),
        CounselorMetrics(id='fast', name='Fast', avg_response_time=2),
    ]
    assert fastest_responder(metrics).id == 'fast'
    assert fastest_responder(metrics[:1]) is None


def test_needs_improvement_thresholds():
    metrics = [
        CounselorMetrics(id='good', name='Good', conversion_rate=80, application_success_rate=90,
                         avg_response_time=3),
        CounselorMetrics(id='slow', name='Slow', conversion_rate=80, application_success_rate=90,
                         avg_response_time=30),
        CounselorMetrics(id='low', name='Low', conversion_rate=20, application_success_rate=90),
    ]
    assert [m.id for m in needs_improvement(metrics)] == ['slow', 'low']
    assert [m.id for m in needs_improvement(metrics, {'response': 48})] == ['low']


def test_summary_filters_display_but_ranks_everyone():
    """A single-counselor view still reports rankings across the team."""
    summary = summarize_performance(three_counselor_snapshot(), counselor='C', now=NOW)

    assert [m.id for m in summary.metrics] == ['C']
    assert summary.top_performer == 'A'
    assert summary.top_by_conversion == ['A', 'C', 'B']
    assert summary.overall.counselor_count == 3
    # (70 + 0 + 25) / 3 = 31.67
    assert summary.overall.avg_conversion_rate == 32
    assert summary.fastest_responder is None


def test_summary_for_unknown_counselor_is_empty():
    summary = summarize_performance(three_counselor_snapshot(), counselor='Z', now=NOW)
    assert summary.metrics == []


def test_summary_with_no_data():
    """Empty collections degrade to an empty, zeroed summary."""
    summary = summarize_performance(Snapshot(), now=NOW)

    assert summary.metrics == []
    assert summary.overall.avg_conversion_rate == 0
    assert summary.top_performer is None
    assert summary.intakes == []


def test_aggregation_is_idempotent():
    """Same input, same output."""
    snapshot = three_counselor_snapshot()
    first = summarize_performance(snapshot, days=90, now=NOW)
    second = summarize_performance(snapshot, days=90, now=NOW)

    assert first.model_dump() == second.model_dump()


def test_summary_serializes_camel_case():
    summary = summarize_performance(three_counselor_snapshot(), now=NOW)
    data = summary.model_dump(by_alias=True)

    assert 'topPerformer' in data
    assert 'conversionRate' in data['metrics'][0]
    assert 'avgResponseTime' in data['metrics'][0]
