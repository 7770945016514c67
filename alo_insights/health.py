"""Student health scores and application trend.

A health score (0-100) summarizes how engaged a student is: profile
completeness, application activity, communication and approved documents
each contribute up to 25 points.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import List, Optional

import pandas as pd

from alo_insights.fetcher import Snapshot
from alo_insights.models import HealthReport, StudentHealth, StudentProfile, TrendPoint
from alo_insights.windows import parse_date, round_half_up, utc_now

logger = logging.getLogger(__name__)

AT_RISK_LIMIT = 20
TREND_MONTHS = 6


def _within_days(value, now: datetime, days: int) -> bool:
    parsed = parse_date(value)
    return parsed is not None and now - parsed < timedelta(days=days)


def get_risk_level(score: float) -> str:
    if score < 30:
        return 'high'
    if score < 50:
        return 'medium'
    return 'low'


def student_health(
    student: StudentProfile,
    applications: list,
    messages: list,
    documents: list,
    now: datetime,
) -> StudentHealth:
    """Score a single student from their own applications, messages and documents."""
    score = 0.0
    factors = []

    completeness = student.profile_completeness or 0
    score += completeness / 100.0 * 25
    if completeness < 60:
        factors.append('Incomplete profile')

    if applications:
        score += 15
        if any(_within_days(a.applied_date, now, 30) for a in applications):
            score += 10
    else:
        factors.append('No applications submitted')

    if messages:
        score += min(len(messages) * 5, 15)
        if any(_within_days(m.created_date, now, 7) for m in messages):
            score += 10
    else:
        factors.append('No recent communication')

    approved = sum(1 for d in documents if d.status == 'approved')
    score += min(approved * 5, 25)
    if documents and approved == 0:
        factors.append('Documents pending approval')

    return StudentHealth(
        student_id=student.id,
        student_name=student.full_name,
        health_score=min(round_half_up(score), 100),
        risk_level=get_risk_level(score),
        is_at_risk=score < 40 or len(factors) >= 2,
        risk_factors=factors,
        applications=len(applications),
        messages=len(messages),
        documents=len(documents),
        approved_documents=approved,
    )


def application_trend(snapshot: Snapshot, now: datetime, months: int = TREND_MONTHS) -> List[TrendPoint]:
    """Applications per calendar month for the last `months` months, oldest first."""
    dates = [parse_date(a.applied_date) for a in snapshot.applications]
    applied = pd.Series([d for d in dates if d is not None], dtype='datetime64[ns]')
    periods = applied.dt.to_period('M').value_counts() if not applied.empty else pd.Series(dtype=int)

    current = pd.Period(now, freq='M')
    points = []
    for offset in range(months - 1, -1, -1):
        period = current - offset
        points.append(TrendPoint(
            month=period.strftime('%b %Y'),
            count=int(periods.get(period, 0)),
        ))
    return points


def health_report(snapshot: Snapshot, now: Optional[datetime] = None) -> HealthReport:
    """Health scores for every student, the most at-risk students and the trend."""
    now = now or utc_now()

    apps_by_student = defaultdict(list)
    for a in snapshot.applications:
        apps_by_student[a.student_id].append(a)
    messages_by_student = defaultdict(list)
    for m in snapshot.messages:
        messages_by_student[m.student_id].append(m)
    docs_by_student = defaultdict(list)
    for d in snapshot.documents:
        docs_by_student[d.student_id].append(d)

    scores = [
        student_health(
            s,
            apps_by_student.get(s.id, []),
            messages_by_student.get(s.id, []),
            docs_by_student.get(s.id, []),
            now,
        )
        for s in snapshot.students
    ]
    at_risk = sorted((s for s in scores if s.is_at_risk), key=lambda s: s.health_score)[:AT_RISK_LIMIT]

    logger.info("Scored %d students, %d at risk", len(scores), len(at_risk))
    return HealthReport(students=scores, at_risk=at_risk, trend=application_trend(snapshot, now))
