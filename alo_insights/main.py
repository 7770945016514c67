"""FastAPI application for ALO Insights counselor analytics."""

import logging
import traceback
from typing import Any, Dict, Iterator

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from alo_insights import config
from alo_insights.email_templates import generate_email_draft
from alo_insights.fetcher import BackendClient, Snapshot, fetch_snapshot
from alo_insights.health import health_report
from alo_insights.matcher import match_courses, match_scholarships
from alo_insights.metrics import summarize_performance
from alo_insights.models import (
    CourseMatch,
    EmailDraftRequest,
    EmailDraftResponse,
    HealthReport,
    MatchRequest,
    MonthlyReport,
    PerformanceSummary,
    ScholarshipMatch,
    WorkloadResponse,
)
from alo_insights.report import export_workbook, filter_applications, report_filename, tabulate
from alo_insights.windows import ALL, validate_window, validate_year
from alo_insights.workload import balance_new_leads, compute_workload

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ALO Insights", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error_detail = str(exc)
    if config.DEBUG:
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def get_backend_client() -> Iterator[BackendClient]:
    """Backend client for one request."""
    client = BackendClient(
        config.BACKEND_BASE_URL,
        api_key=config.BACKEND_API_KEY or None,
        timeout=config.BACKEND_TIMEOUT,
    )
    try:
        yield client
    finally:
        client.close()


def get_snapshot(client: BackendClient = Depends(get_backend_client)) -> Snapshot:
    return fetch_snapshot(client, limit=config.FETCH_LIMIT)


def _check_window(days: int) -> int:
    try:
        return validate_window(days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _check_year(year: str) -> str:
    try:
        return validate_year(year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


def _performance(snapshot: Snapshot, counselor: str, days: int, intake: str) -> PerformanceSummary:
    return summarize_performance(
        snapshot,
        counselor=counselor,
        days=_check_window(days),
        intake=intake,
        thresholds=config.IMPROVEMENT_THRESHOLDS,
    )


@app.get("/performance", response_model=PerformanceSummary)
def get_performance(
    counselor: str = ALL,
    days: int = config.DEFAULT_WINDOW_DAYS,
    intake: str = ALL,
    snapshot: Snapshot = Depends(get_snapshot),
):
    """Counselor performance computed from a fresh backend snapshot."""
    return _performance(snapshot, counselor, days, intake)


@app.post("/performance", response_model=PerformanceSummary)
def post_performance(
    payload: Dict[str, Any] = Body(...),
    counselor: str = ALL,
    days: int = config.DEFAULT_WINDOW_DAYS,
    intake: str = ALL,
):
    """Counselor performance computed from collections supplied in the body."""
    return _performance(Snapshot.from_payload(payload), counselor, days, intake)


def _report(snapshot: Snapshot, year: str, counselor: str, destination: str, level: str) -> MonthlyReport:
    year = _check_year(year)
    applications = filter_applications(snapshot, counselor=counselor, destination=destination, level=level)
    return tabulate(applications, year)


def _xlsx_response(report: MonthlyReport) -> Response:
    return Response(
        content=export_workbook(report),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={report_filename(report.year)}"
        }
    )


@app.get("/reports/{year}.xlsx")
def download_report(
    year: str,
    counselor: str = ALL,
    destination: str = ALL,
    level: str = ALL,
    snapshot: Snapshot = Depends(get_snapshot),
):
    """Download the monthly performance report as a spreadsheet."""
    return _xlsx_response(_report(snapshot, year, counselor, destination, level))


@app.get("/reports/{year}", response_model=MonthlyReport)
def get_report(
    year: str,
    counselor: str = ALL,
    destination: str = ALL,
    level: str = ALL,
    snapshot: Snapshot = Depends(get_snapshot),
):
    """Monthly performance report for `year`."""
    return _report(snapshot, year, counselor, destination, level)


@app.post("/reports/{year}", response_model=MonthlyReport)
def post_report(
    year: str,
    payload: Dict[str, Any] = Body(...),
    counselor: str = ALL,
    destination: str = ALL,
    level: str = ALL,
):
    return _report(Snapshot.from_payload(payload), year, counselor, destination, level)


@app.post("/reports/{year}/export")
def export_report(
    year: str,
    payload: Dict[str, Any] = Body(...),
    counselor: str = ALL,
    destination: str = ALL,
    level: str = ALL,
):
    return _xlsx_response(_report(Snapshot.from_payload(payload), year, counselor, destination, level))


@app.post("/match/courses", response_model=list[CourseMatch])
def post_match_courses(request: MatchRequest):
    """Rank courses for a student profile."""
    return match_courses(request.courses, request.preferences, request.universities, top_k=request.top_k)


@app.post("/match/scholarships", response_model=list[ScholarshipMatch])
def post_match_scholarships(request: MatchRequest):
    """Rank scholarships for a student profile."""
    return match_scholarships(request.scholarships, request.preferences, top_k=request.top_k)


@app.post("/workload", response_model=WorkloadResponse)
def post_workload(payload: Dict[str, Any] = Body(...)):
    """Counselor workload and suggested owners for unassigned new leads."""
    snapshot = Snapshot.from_payload(payload)
    return WorkloadResponse(workload=compute_workload(snapshot), suggestions=balance_new_leads(snapshot))


@app.post("/health-scores", response_model=HealthReport)
def post_health_scores(payload: Dict[str, Any] = Body(...)):
    """Student health scores, at-risk students and the application trend."""
    return health_report(Snapshot.from_payload(payload))


@app.post("/email-draft", response_model=EmailDraftResponse)
async def generate_email_draft_endpoint(request: EmailDraftRequest):
    """Generate a follow-up email draft for a student."""
    email = generate_email_draft(
        student_name=request.student_name,
        risk_level=request.risk_level,
        counselor_name=request.counselor_name,
        risk_factors=request.risk_factors,
    )
    return EmailDraftResponse(**email)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
