"""Counselor performance aggregation.

Turns a fetched snapshot into per-counselor KPIs plus rankings. Pure
computation: the same snapshot and filters always give the same result.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np

from alo_insights.fetcher import Snapshot
from alo_insights.models import (
    Application,
    Counselor,
    CounselorMetrics,
    Message,
    OverallStats,
    PerformanceSummary,
)
from alo_insights.windows import (
    ALL,
    cutoff,
    is_after_cutoff,
    matches_filter,
    parse_date,
    round_half_up,
    safe_rate,
    utc_now,
)

logger = logging.getLogger(__name__)

CONVERTED_STATUSES = {'enrolled', 'converted'}
ACTIVE_STATUSES = {'contacted', 'qualified', 'in_progress', 'applied'}
SUCCESSFUL_APP_STATUSES = {'unconditional_offer', 'conditional_offer', 'enrolled'}

DEFAULT_IMPROVEMENT_THRESHOLDS = {'conversion': 50.0, 'success': 60.0, 'response': 24.0}


def _thread_keys(message: Message) -> List[Tuple[str, str]]:
    """
    Thread keys for a message, most specific first.

    Student messages are indexed under both their conversation and their
    student, so a reply matches whichever id it carries.
    """
    keys = []
    if message.conversation_id:
        keys.append(('conversation', message.conversation_id))
    if message.student_id:
        keys.append(('student', message.student_id))
    return keys


def _is_student_message(message: Message) -> bool:
    return message.sender_type == 'student'


def _authored_by(message: Message, counselor_id: str) -> bool:
    """Sent by the counselor; messages without a sender count for `counselor_id`."""
    if _is_student_message(message):
        return False
    return message.sender_id == counselor_id or (
        message.sender_id is None and message.counselor_id == counselor_id
    )


def _student_threads(messages: List[Message]) -> Dict[Tuple[str, str], List[datetime]]:
    """Student message timestamps per thread key, sorted ascending."""
    threads: Dict[Tuple[str, str], List[datetime]] = defaultdict(list)
    for m in messages:
        if not _is_student_message(m):
            continue
        sent = parse_date(m.created_date)
        if sent is None:
            continue
        for key in _thread_keys(m):
            threads[key].append(sent)
    for times in threads.values():
        times.sort()
    return threads


def response_samples(counselor_messages: List[Message], threads: Dict[Tuple[str, str], List[datetime]]) -> List[float]:
    """
    Response-time samples in hours for a counselor's messages.

    Each reply is measured against the nearest student message sent before
    it in the same conversation. A reply whose conversation has no earlier
    student message falls back to the same student's other messages.
    Replies with nothing before them are not responses and give no sample.
    """
    samples = []
    for m in counselor_messages:
        sent = parse_date(m.created_date)
        if sent is None:
            continue
        for key in _thread_keys(m):
            prior = [t for t in threads.get(key, []) if t < sent]
            if prior:
                samples.append((sent - prior[-1]).total_seconds() / 3600.0)
                break
    return samples


def average_response_time(samples: List[float]) -> int:
    if not samples:
        return 0
    return round_half_up(np.mean(samples))


def _application_date(app: Application):
    return app.applied_date if app.applied_date is not None else app.created_date


def counselor_metrics(
    counselor: Counselor,
    snapshot: Snapshot,
    cutoff_date: datetime,
    intake: str = ALL,
    threads: Optional[Dict[Tuple[str, str], List[datetime]]] = None,
) -> CounselorMetrics:
    """Compute the metrics for a single counselor."""
    if threads is None:
        threads = _student_threads(snapshot.messages)

    students = [s for s in snapshot.students if s.counselor_id == counselor.id]
    student_ids = {s.id for s in students}
    inquiries = [i for i in snapshot.inquiries if i.assigned_to == counselor.id]
    applications = [a for a in snapshot.applications if a.student_id in student_ids]
    tasks = [t for t in snapshot.tasks if t.assigned_to == counselor.id]
    messages = [m for m in snapshot.messages if _authored_by(m, counselor.id)]

    recent_inquiries = [i for i in inquiries if is_after_cutoff(i.created_date, cutoff_date)]
    recent_applications = [
        a for a in applications
        if is_after_cutoff(_application_date(a), cutoff_date) and matches_filter(a.intake, intake)
    ]

    conversions = sum(1 for s in students if s.status in CONVERTED_STATUSES)
    successful = sum(1 for a in recent_applications if a.status in SUCCESSFUL_APP_STATUSES)
    completed = sum(1 for t in tasks if t.status == 'completed')
    enrolled = sum(1 for s in students if s.status == 'enrolled')

    return CounselorMetrics(
        id=counselor.id,
        name=counselor.name,
        total_students=len(students),
        active_students=sum(1 for s in students if s.status in ACTIVE_STATUSES),
        conversions=conversions,
        conversion_rate=safe_rate(conversions, len(students)),
        inquiries_handled=len(recent_inquiries),
        applications_managed=len(recent_applications),
        application_success_rate=safe_rate(successful, len(recent_applications)),
        avg_response_time=average_response_time(response_samples(messages, threads)),
        task_completion_rate=safe_rate(completed, len(tasks)),
        communications=len(messages),
        enrollments=enrolled,
    )


def compute_metrics(
    snapshot: Snapshot,
    days: int = 30,
    intake: str = ALL,
    now: Optional[datetime] = None,
) -> List[CounselorMetrics]:
    """Metrics for every counselor, in snapshot order."""
    cutoff_date = cutoff(now or utc_now(), days)
    threads = _student_threads(snapshot.messages)
    return [
        counselor_metrics(c, snapshot, cutoff_date, intake=intake, threads=threads)
        for c in snapshot.counselors
    ]


def top_performer(metrics: List[CounselorMetrics]) -> Optional[CounselorMetrics]:
    """Highest conversion rate; the first counselor seen wins a tie."""
    best = None
    for m in metrics:
        if best is None or m.conversion_rate > best.conversion_rate:
            best = m
    return best


def fastest_responder(metrics: List[CounselorMetrics]) -> Optional[CounselorMetrics]:
    """Lowest average response time among counselors with response data."""
    best = None
    for m in metrics:
        if m.avg_response_time <= 0:
            continue
        if best is None or m.avg_response_time < best.avg_response_time:
            best = m
    return best


def top_by(metrics: List[CounselorMetrics], attr: str, n: int = 3, ascending: bool = False) -> List[CounselorMetrics]:
    sign = 1 if ascending else -1
    return sorted(metrics, key=lambda m: sign * getattr(m, attr))[:n]


def needs_improvement(
    metrics: List[CounselorMetrics],
    thresholds: Optional[Dict[str, float]] = None,
) -> List[CounselorMetrics]:
    thresholds = {**DEFAULT_IMPROVEMENT_THRESHOLDS, **(thresholds or {})}
    return [
        m for m in metrics
        if m.conversion_rate < thresholds['conversion']
        or m.application_success_rate < thresholds['success']
        or m.avg_response_time > thresholds['response']
    ]


def overall_stats(metrics: List[CounselorMetrics]) -> OverallStats:
    if not metrics:
        return OverallStats()
    return OverallStats(
        counselor_count=len(metrics),
        avg_conversion_rate=round_half_up(np.mean([m.conversion_rate for m in metrics])),
        avg_success_rate=round_half_up(np.mean([m.application_success_rate for m in metrics])),
        avg_response_time=round_half_up(np.mean([m.avg_response_time for m in metrics])),
    )


def _ids(metrics) -> List[str]:
    return [m.id for m in metrics]


def summarize_performance(
    snapshot: Snapshot,
    counselor: str = ALL,
    days: int = 30,
    intake: str = ALL,
    now: Optional[datetime] = None,
    thresholds: Optional[Dict[str, float]] = None,
) -> PerformanceSummary:
    """
    Full performance view for the dashboard.

    Rankings and overall stats cover every counselor; the `metrics` list is
    narrowed to one counselor when `counselor` is not "all".
    """
    all_metrics = compute_metrics(snapshot, days=days, intake=intake, now=now)
    displayed = [m for m in all_metrics if matches_filter(m.id, counselor)]

    best = top_performer(all_metrics)
    fastest = fastest_responder(all_metrics)
    responders = [m for m in all_metrics if m.avg_response_time > 0]
    intakes = sorted({a.intake for a in snapshot.applications if a.intake})

    logger.info(
        "Computed metrics for %d counselors (%d displayed, window=%sd, intake=%s)",
        len(all_metrics), len(displayed), days, intake,
    )

    return PerformanceSummary(
        metrics=displayed,
        overall=overall_stats(all_metrics),
        top_by_conversion=_ids(top_by(all_metrics, 'conversion_rate')),
        top_by_success=_ids(top_by(all_metrics, 'application_success_rate')),
        top_by_response=_ids(top_by(responders, 'avg_response_time', ascending=True)),
        top_performer=best.id if best else None,
        fastest_responder=fastest.id if fastest else None,
        needs_improvement=_ids(needs_improvement(all_metrics, thresholds)),
        intakes=intakes,
    )
