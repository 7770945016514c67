"""Data models for the ALO Insights service.

Input entities mirror the records held by the backend data service. Every
non-id field has a default so partially filled records still validate, and
unknown fields are ignored. Derived view models are built fresh for each
request and never persisted.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


DateLike = Union[datetime, str, None]


class BackendModel(BaseModel):
    """Backend payload: unknown keys are ignored and nulls fall back to defaults."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Record(BackendModel):
    """Base for records read from the backend data service."""
    id: str


class Counselor(Record):
    name: str = ""
    user_id: Optional[str] = None
    specializations: List[str] = Field(default_factory=list)
    max_students: int = 50
    is_available: bool = True
    status: str = "active"


class StudentProfile(Record):
    counselor_id: Optional[str] = None
    status: Optional[str] = None
    created_date: DateLike = None
    profile_completeness: float = 0
    first_name: str = ""
    last_name: str = ""
    country: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "Student"


class Inquiry(Record):
    assigned_to: Optional[str] = None
    status: Optional[str] = None
    created_date: DateLike = None
    updated_date: DateLike = None


class Application(Record):
    student_id: Optional[str] = None
    course_id: Optional[str] = None
    status: Optional[str] = None
    applied_date: DateLike = None
    created_date: DateLike = None
    intake: Optional[str] = None
    milestones: Dict[str, Any] = Field(default_factory=dict)
    visa_status: Optional[str] = None
    assigned_counsellor: Optional[str] = None

    def milestone_completed(self, name: str) -> bool:
        milestone = self.milestones.get(name) or {}
        return isinstance(milestone, dict) and bool(milestone.get("completed"))


class Task(Record):
    assigned_to: Optional[str] = None
    student_id: Optional[str] = None
    status: Optional[str] = None
    due_date: DateLike = None
    priority: Optional[str] = None


class Message(Record):
    sender_id: Optional[str] = None
    sender_type: Optional[str] = None
    counselor_id: Optional[str] = None
    student_id: Optional[str] = None
    conversation_id: Optional[str] = None
    created_date: DateLike = None
    sentiment: Optional[str] = None
    response_time_minutes: Optional[float] = None


class Document(Record):
    student_id: Optional[str] = None
    status: Optional[str] = None


class CourseRequirements(BackendModel):
    min_gpa: Optional[float] = None
    ielts_score: Optional[float] = None
    toefl_score: Optional[float] = None


class Course(Record):
    university_id: Optional[str] = None
    name: str = ""
    country: Optional[str] = None
    level: Optional[str] = None
    degree_level: Optional[str] = None
    field_of_study: Optional[str] = None
    tuition_fee: Optional[float] = None
    requirements: CourseRequirements = Field(default_factory=CourseRequirements)


class University(Record):
    name: str = ""
    country: Optional[str] = None


class Scholarship(Record):
    name: str = ""
    country: Optional[str] = None
    degree_level: Optional[str] = None
    field_of_study: Optional[str] = None
    min_gpa: Optional[float] = None
    ielts_score: Optional[float] = None
    toefl_score: Optional[float] = None
    amount: Optional[float] = None
    application_fee: Optional[float] = None


class ViewModel(BaseModel):
    """Derived output; serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CounselorMetrics(ViewModel):
    """Performance metrics for one counselor over one query."""
    id: str
    name: str
    total_students: int = 0
    active_students: int = 0
    conversions: int = 0
    conversion_rate: int = 0
    inquiries_handled: int = 0
    applications_managed: int = 0
    application_success_rate: int = 0
    avg_response_time: int = 0
    task_completion_rate: int = 0
    communications: int = 0
    enrollments: int = 0
    # Not backed by any data source yet; always None.
    satisfaction_score: Optional[int] = None


class OverallStats(ViewModel):
    counselor_count: int = 0
    avg_conversion_rate: int = 0
    avg_success_rate: int = 0
    avg_response_time: int = 0


class PerformanceSummary(ViewModel):
    metrics: List[CounselorMetrics]
    overall: OverallStats
    top_by_conversion: List[str]
    top_by_success: List[str]
    top_by_response: List[str]
    top_performer: Optional[str] = None
    fastest_responder: Optional[str] = None
    needs_improvement: List[str]
    intakes: List[str]


class ReportSection(ViewModel):
    title: str
    categories: List[str]


class MonthlyReport(ViewModel):
    """Application counts per status category and calendar month."""
    year: str
    months: List[str]
    rows: Dict[str, List[int]]
    totals: Dict[str, int]
    # Applications bucketed per month, whatever their status.
    unique_students: List[int]
    unique_students_total: int
    sections: List[ReportSection]


class EligibilityNote(BaseModel):
    type: str
    text: str


class CourseMatch(ViewModel):
    course_id: str
    name: str
    university: Optional[str] = None
    score: int
    eligibility: List[EligibilityNote]


class ScholarshipMatch(ViewModel):
    scholarship_id: str
    name: str
    score: int
    eligibility: List[EligibilityNote]


class StudentPreferences(BaseModel):
    """Academic profile and preferences a student enters for matching."""
    gpa: Optional[float] = None
    gpa_scale: float = 4.0
    english_test: Optional[str] = None
    english_score: Optional[float] = None
    preferred_degree: Optional[str] = None
    preferred_fields: List[str] = Field(default_factory=list)
    preferred_countries: List[str] = Field(default_factory=list)
    budget_max: Optional[float] = None


class WorkloadEntry(ViewModel):
    counselor_id: str
    name: str
    assigned_students: int
    assigned_applications: int
    success_rate: int
    workload_percentage: float
    available_capacity: int
    is_available: bool


class AssignmentSuggestion(ViewModel):
    student_id: str
    counselor_id: Optional[str]
    score: float = 0.0


class StudentHealth(ViewModel):
    student_id: str
    student_name: str
    health_score: int
    risk_level: str
    is_at_risk: bool
    risk_factors: List[str]
    applications: int = 0
    messages: int = 0
    documents: int = 0
    approved_documents: int = 0


class TrendPoint(ViewModel):
    month: str
    count: int


class HealthReport(ViewModel):
    students: List[StudentHealth]
    at_risk: List[StudentHealth]
    trend: List[TrendPoint]


class MatchRequest(BaseModel):
    """Candidates plus the student profile to score them against."""
    preferences: StudentPreferences
    courses: List[Course] = Field(default_factory=list)
    universities: List[University] = Field(default_factory=list)
    scholarships: List[Scholarship] = Field(default_factory=list)
    top_k: int = Field(default=10, ge=1)


class WorkloadResponse(ViewModel):
    workload: List[WorkloadEntry]
    suggestions: List[AssignmentSuggestion]


class EmailDraftRequest(BaseModel):
    """Request for a follow-up email draft."""
    student_name: str
    risk_level: str
    counselor_name: Optional[str] = None
    risk_factors: List[str] = Field(default_factory=list)


class EmailDraftResponse(BaseModel):
    """Email draft response."""
    subject: str
    body: str
