"""Rule-based course and scholarship matching.

Each candidate gets fixed points per eligibility predicate; the sum is
clamped to 0-100. Going over budget costs points but never excludes a
candidate.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from alo_insights.models import (
    Course,
    CourseMatch,
    EligibilityNote,
    Scholarship,
    ScholarshipMatch,
    StudentPreferences,
    University,
)

REQUIREMENT_MET = 25
NO_REQUIREMENT = 20
PREFERENCE_MATCH = 25
PREFERENCE_MISS = 10
COUNTRY_MATCH = 10
OVER_BUDGET_PENALTY = 10

DEFAULT_TOP_K = 10


def clamp_score(score: float) -> int:
    return int(np.clip(score, 0, 100))


def gpa_percent(prefs: StudentPreferences) -> Optional[float]:
    """Student GPA as a percentage of its scale."""
    if prefs.gpa is None or not prefs.gpa_scale:
        return None
    return prefs.gpa / prefs.gpa_scale * 100.0


def _gpa_points(prefs: StudentPreferences, min_gpa: Optional[float], notes: List[EligibilityNote]) -> int:
    if not min_gpa:
        notes.append(EligibilityNote(type='pass', text='No GPA requirement'))
        return NO_REQUIREMENT
    student_pct = gpa_percent(prefs)
    # Requirements are stored on a 4.0 scale.
    if student_pct is not None and student_pct >= min_gpa / 4.0 * 100.0:
        notes.append(EligibilityNote(type='pass', text='GPA requirement met'))
        return REQUIREMENT_MET
    notes.append(EligibilityNote(type='fail', text=f'GPA below requirement ({min_gpa})'))
    return 0


def _english_points(
    prefs: StudentPreferences,
    ielts: Optional[float],
    toefl: Optional[float],
    notes: List[EligibilityNote],
) -> int:
    test = (prefs.english_test or '').lower()
    required = {'ielts': ielts, 'toefl': toefl}.get(test)
    if not required:
        notes.append(EligibilityNote(type='pass', text='English requirement flexible'))
        return NO_REQUIREMENT
    label = test.upper()
    if prefs.english_score is not None and prefs.english_score >= required:
        notes.append(EligibilityNote(type='pass', text=f'{label} score met'))
        return REQUIREMENT_MET
    notes.append(EligibilityNote(type='fail', text=f'{label} below {required}'))
    return 0


def _preference_points(matched: bool) -> int:
    return PREFERENCE_MATCH if matched else PREFERENCE_MISS


def _country_matches(prefs: StudentPreferences, country: Optional[str]) -> bool:
    if not country:
        return False
    country = country.lower()
    return any(c and c.lower() in country for c in prefs.preferred_countries)


def _budget_points(prefs: StudentPreferences, cost: Optional[float], notes: List[EligibilityNote]) -> int:
    if not prefs.budget_max or not cost:
        return 0
    if cost <= prefs.budget_max:
        notes.append(EligibilityNote(type='pass', text='Within budget'))
        return 0
    notes.append(EligibilityNote(type='warning', text='Above budget'))
    return -OVER_BUDGET_PENALTY


def score_course(
    course: Course,
    prefs: StudentPreferences,
    university: Optional[University] = None,
) -> Tuple[int, List[EligibilityNote]]:
    """Score one course against a student's profile."""
    notes: List[EligibilityNote] = []
    req = course.requirements

    score = _gpa_points(prefs, req.min_gpa, notes)
    score += _english_points(prefs, req.ielts_score, req.toefl_score, notes)
    score += _preference_points(prefs.preferred_degree is not None and prefs.preferred_degree == course.degree_level)
    score += _preference_points(course.field_of_study in prefs.preferred_fields)

    country = university.country if university and university.country else course.country
    if _country_matches(prefs, country):
        score += COUNTRY_MATCH

    score += _budget_points(prefs, course.tuition_fee, notes)
    return clamp_score(score), notes


def score_scholarship(scholarship: Scholarship, prefs: StudentPreferences) -> Tuple[int, List[EligibilityNote]]:
    """Score one scholarship with the same predicates used for courses."""
    notes: List[EligibilityNote] = []

    score = _gpa_points(prefs, scholarship.min_gpa, notes)
    score += _english_points(prefs, scholarship.ielts_score, scholarship.toefl_score, notes)
    score += _preference_points(
        prefs.preferred_degree is not None and prefs.preferred_degree == scholarship.degree_level
    )
    score += _preference_points(scholarship.field_of_study in prefs.preferred_fields)
    if _country_matches(prefs, scholarship.country):
        score += COUNTRY_MATCH
    score += _budget_points(prefs, scholarship.application_fee, notes)
    return clamp_score(score), notes


def match_courses(
    courses: List[Course],
    prefs: StudentPreferences,
    universities: Optional[List[University]] = None,
    top_k: int = DEFAULT_TOP_K,
) -> List[CourseMatch]:
    """Top-K courses by match score, highest first."""
    university_map: Dict[str, University] = {u.id: u for u in universities or []}
    matches = []
    for course in courses:
        university = university_map.get(course.university_id)
        score, notes = score_course(course, prefs, university)
        matches.append(CourseMatch(
            course_id=course.id,
            name=course.name,
            university=university.name if university else None,
            score=score,
            eligibility=notes,
        ))
    matches.sort(key=lambda m: -m.score)
    return matches[:top_k]


def match_scholarships(
    scholarships: List[Scholarship],
    prefs: StudentPreferences,
    top_k: int = DEFAULT_TOP_K,
) -> List[ScholarshipMatch]:
    """Top-K scholarships by match score, highest first."""
    matches = []
    for scholarship in scholarships:
        score, notes = score_scholarship(scholarship, prefs)
        matches.append(ScholarshipMatch(
            scholarship_id=scholarship.id,
            name=scholarship.name,
            score=score,
            eligibility=notes,
        ))
    matches.sort(key=lambda m: -m.score)
    return matches[:top_k]
