"""Monthly performance report: tabulation and spreadsheet export.

Applications are bucketed by the calendar month of `applied_date` within a
selected year. Categories are independent predicates, so one application
can count towards several rows (a conditional offer is also an
application sent).
"""

import io
import logging
from datetime import date
from typing import Callable, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font

from alo_insights.fetcher import Snapshot
from alo_insights.models import Application, MonthlyReport, ReportSection
from alo_insights.windows import ALL, MONTHS, matches_filter, parse_date, validate_year

logger = logging.getLogger(__name__)

REPORT_TITLE = "ALO Education - Performance Report"
SHEET_NAME = "Performance Report"

Predicate = Callable[[Application], bool]


def _status_in(*statuses: str) -> Predicate:
    return lambda app: app.status in statuses


UNIQUE_STUDENT = 'Unique Student'

# Category -> predicate, in report row order.
CATEGORIES: Dict[str, Predicate] = {
    'Application Sent': _status_in(
        'submitted_to_university', 'under_review', 'conditional_offer', 'unconditional_offer'
    ),
    'Decision Waiting': _status_in('submitted_to_university', 'under_review'),
    'Conditional Offer': _status_in('conditional_offer'),
    'Unconditional Offer': _status_in('unconditional_offer'),
    'Deposit Paid': lambda app: app.milestone_completed('offer_received'),
    'Visa Letter Req Sent': _status_in('visa_processing'),
    'Visa Letter Received': lambda app: app.milestone_completed('visa_approved'),
    'Student Joined': _status_in('enrolled'),
    'Visa Reject': lambda app: app.visa_status == 'rejected',
    'Declined': _status_in('withdrawn'),
    'App Withdrawn': _status_in('withdrawn'),
    'App Rejection': _status_in('rejected'),
}

SECTIONS = [
    ('Application Status', ['Application Sent', 'Decision Waiting', 'Conditional Offer', 'Unconditional Offer']),
    ('Visa Process', ['Deposit Paid', 'Visa Letter Req Sent', 'Visa Letter Received', 'Student Joined', 'Visa Reject']),
    ('Negative Status', ['Declined', 'App Withdrawn', 'App Rejection']),
]


def report_filename(year: str) -> str:
    return f"ALO_Performance_Report_{year}.xlsx"


def filter_applications(
    snapshot: Snapshot,
    counselor: str = ALL,
    destination: str = ALL,
    level: str = ALL,
) -> List[Application]:
    """
    Scope applications by counselor, destination country and course level.

    Counselor scoping goes through the student's `counselor_id`; destination
    and level go through the application's course. Unresolvable references
    simply fail the filter.
    """
    applications = snapshot.applications

    if counselor != ALL:
        student_ids = {s.id for s in snapshot.students if s.counselor_id == counselor}
        applications = [a for a in applications if a.student_id in student_ids]

    if destination != ALL or level != ALL:
        courses = {c.id: c for c in snapshot.courses}

        def keep(app: Application) -> bool:
            course = courses.get(app.course_id)
            if course is None:
                return False
            return matches_filter(course.country, destination) and matches_filter(course.level, level)

        applications = [a for a in applications if keep(a)]

    return applications


def _monthly_frame(applications: List[Application], year: str) -> pd.DataFrame:
    """One row per application in `year`, with its month and category flags."""
    rows = []
    for app in applications:
        applied = parse_date(app.applied_date)
        if applied is None or str(applied.year) != year:
            logger.debug("Skipping application %s outside %s", app.id, year)
            continue
        row = {name: bool(predicate(app)) for name, predicate in CATEGORIES.items()}
        row['month'] = applied.month - 1
        rows.append(row)
    return pd.DataFrame(rows, columns=['month', *CATEGORIES.keys()])


def tabulate(applications: List[Application], year: str) -> MonthlyReport:
    """Build the 12-month x category matrix for `year`."""
    year = validate_year(year)
    df = _monthly_frame(applications, year)

    if df.empty:
        counts = pd.DataFrame(0, index=range(12), columns=list(CATEGORIES))
        per_month = pd.Series(0, index=range(12))
    else:
        counts = (
            df.groupby('month')[list(CATEGORIES)]
            .sum()
            .reindex(range(12), fill_value=0)
            .astype(int)
        )
        per_month = df['month'].value_counts().reindex(range(12), fill_value=0).astype(int)

    rows = {name: [int(v) for v in counts[name].tolist()] for name in CATEGORIES}
    totals = {name: sum(values) for name, values in rows.items()}
    unique_students = [int(v) for v in per_month.tolist()]

    logger.info(
        "Tabulated %d of %d applications for %s",
        len(df), len(applications), year,
    )

    return MonthlyReport(
        year=year,
        months=list(MONTHS),
        rows=rows,
        totals=totals,
        unique_students=unique_students,
        unique_students_total=sum(unique_students),
        sections=[ReportSection(title=title, categories=names) for title, names in SECTIONS],
    )


def report_rows(report: MonthlyReport, generated: Optional[date] = None) -> List[list]:
    """
    Row-oriented layout of the report, as written to the spreadsheet.

    Title block, blank line, month header and the Unique Student row, then
    each section after a blank row, introduced by its header row.
    """
    generated = generated or date.today()
    data: List[list] = [
        [REPORT_TITLE],
        [f"Year: {report.year}"],
        [f"Generated: {generated.strftime('%m/%d/%Y')}"],
        [],
        ['Categories', *report.months, 'Total'],
        [UNIQUE_STUDENT, *report.unique_students, report.unique_students_total],
    ]
    for section in report.sections:
        data.append([])
        data.append([section.title])
        for name in section.categories:
            data.append([name, *report.rows[name], report.totals[name]])
    return data


def export_workbook(report: MonthlyReport, generated: Optional[date] = None) -> bytes:
    """Render the report to .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    section_titles = {s.title for s in report.sections}
    for row in report_rows(report, generated):
        ws.append(row)
        if row and (row[0] in section_titles or row[0] in (REPORT_TITLE, 'Categories')):
            for cell in ws[ws.max_row]:
                cell.font = Font(bold=True)

    ws.column_dimensions['A'].width = 24

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
