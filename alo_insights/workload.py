"""Counselor workload and lead assignment suggestions."""

import logging
from typing import List, Optional

from alo_insights.fetcher import Snapshot
from alo_insights.models import AssignmentSuggestion, Counselor, WorkloadEntry
from alo_insights.windows import safe_rate

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {'enrolled', 'visa_approved'}
WORKLOAD_WEIGHT = 0.4
SPECIALIZATION_BONUS = 30
SUCCESS_WEIGHT = 0.3


def _owner_keys(counselor: Counselor) -> set:
    # Students may reference a counselor by record id or by login user id.
    return {k for k in (counselor.id, counselor.user_id) if k}


def compute_workload(snapshot: Snapshot) -> List[WorkloadEntry]:
    """Current load of every active counselor."""
    entries = []
    for counselor in snapshot.counselors:
        if counselor.status != 'active':
            continue
        keys = _owner_keys(counselor)
        students = sum(1 for s in snapshot.students if s.counselor_id in keys)
        apps = [a for a in snapshot.applications if a.assigned_counsellor in keys]
        successful = sum(1 for a in apps if a.status in SUCCESS_STATUSES)
        capacity = counselor.max_students or 50

        entries.append(WorkloadEntry(
            counselor_id=counselor.id,
            name=counselor.name,
            assigned_students=students,
            assigned_applications=len(apps),
            success_rate=safe_rate(successful, len(apps)),
            workload_percentage=min(students / capacity * 100.0, 100.0),
            available_capacity=capacity - students,
            is_available=counselor.is_available,
        ))
    return entries


def _assignment_score(entry: WorkloadEntry, specializations: List[str], country: Optional[str]) -> float:
    score = (100.0 - entry.workload_percentage) * WORKLOAD_WEIGHT
    if country and any(country.lower() in spec.lower() for spec in specializations):
        score += SPECIALIZATION_BONUS
    score += entry.success_rate * SUCCESS_WEIGHT
    return score


def best_counselor(
    workload: List[WorkloadEntry],
    counselors: List[Counselor],
    country: Optional[str] = None,
) -> Optional[AssignmentSuggestion]:
    """
    Pick the counselor best placed to take a new lead.

    Only available counselors with spare capacity qualify. Lower workload,
    a matching country specialization and a higher success rate all score
    points; the first counselor wins a tie.
    """
    specs = {c.id: c.specializations for c in counselors}
    best: Optional[WorkloadEntry] = None
    best_score = 0.0
    for entry in workload:
        if not entry.is_available or entry.available_capacity <= 0:
            continue
        score = _assignment_score(entry, specs.get(entry.counselor_id, []), country)
        if best is None or score > best_score:
            best, best_score = entry, score
    if best is None:
        return None
    return AssignmentSuggestion(student_id='', counselor_id=best.counselor_id, score=round(best_score, 2))


def _with_extra_student(entry: WorkloadEntry, counselors: List[Counselor]) -> WorkloadEntry:
    capacity = next((c.max_students for c in counselors if c.id == entry.counselor_id), 50) or 50
    students = entry.assigned_students + 1
    return entry.model_copy(update={
        'assigned_students': students,
        'workload_percentage': min(students / capacity * 100.0, 100.0),
        'available_capacity': capacity - students,
    })


def balance_new_leads(snapshot: Snapshot) -> List[AssignmentSuggestion]:
    """
    Suggest a counselor for every unassigned new lead.

    Leads are placed one at a time and each placement counts towards the
    chosen counselor's load before the next lead is scored. Nothing is
    written back to the backend.
    """
    workload = compute_workload(snapshot)
    suggestions = []
    for student in snapshot.students:
        if student.counselor_id or student.status != 'new_lead':
            continue
        pick = best_counselor(workload, snapshot.counselors, student.country)
        if pick is None:
            suggestions.append(AssignmentSuggestion(student_id=student.id, counselor_id=None))
            continue
        suggestions.append(pick.model_copy(update={'student_id': student.id}))
        workload = [
            _with_extra_student(e, snapshot.counselors) if e.counselor_id == pick.counselor_id else e
            for e in workload
        ]

    logger.info("Suggested assignments for %d new leads", len(suggestions))
    return suggestions
