"""Follow-up email drafts for counselors, keyed by student risk level."""

from typing import Dict, List, Optional

from alo_insights import config


def get_counselor_info(counselor_name: Optional[str] = None) -> Dict[str, str]:
    """Signature name and email, from the request or configuration."""
    return {
        'name': counselor_name or config.COUNSELOR_SIGNATURE_NAME,
        'email': config.COUNSELOR_SIGNATURE_EMAIL,
    }


def generate_email_draft(
    student_name: str,
    risk_level: str,
    counselor_name: Optional[str] = None,
    risk_factors: Optional[List[str]] = None,
) -> Dict[str, str]:
    """Generate a follow-up draft tailored to the student's risk level."""
    counselor = get_counselor_info(counselor_name)
    factors = risk_factors or []

    level = risk_level.lower()
    if level == "low":
        return _low_risk_email(student_name, counselor)
    if level == "medium":
        return _medium_risk_email(student_name, factors, counselor)
    return _high_risk_email(student_name, factors, counselor)


def _signature(counselor: Dict[str, str]) -> str:
    return f"{counselor['name']}\n{counselor['email']}"


def _factor_lines(factors: List[str]) -> str:
    if not factors:
        return ""
    lines = "\n".join(f"- {f}" for f in factors)
    return f"\nA few things I noticed on your file:\n{lines}\n"


def _low_risk_email(student_name: str, counselor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Your Study Abroad Plans Are On Track, {student_name}"
    body = f"""Hi {student_name},

Great progress so far! Your profile and applications are moving along well.

If you have any questions about offers, deadlines or next steps, just reply to this email and I'll get back to you.

Best regards,

{_signature(counselor)}"""
    return {'subject': subject, 'body': body}


def _medium_risk_email(student_name: str, factors: List[str], counselor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Let's Keep Your Application Moving, {student_name}"
    body = f"""Hi {student_name},

I wanted to check in on your application progress. You're making headway, but a few items need attention before your intake deadlines.
{_factor_lines(factors)}
Could we schedule a short call this week to go through them together?

Best regards,

{_signature(counselor)}"""
    return {'subject': subject, 'body': body}


def _high_risk_email(student_name: str, factors: List[str], counselor: Dict[str, str]) -> Dict[str, str]:
    subject = f"Important: Next Steps for Your Application, {student_name}"
    body = f"""Hi {student_name},

I haven't heard from you in a while and I want to make sure your study abroad plans stay on track.
{_factor_lines(factors)}
Please reply or book a session with me as soon as possible so we can agree on a plan before the upcoming deadlines.

I'm here to help.

{_signature(counselor)}"""
    return {'subject': subject, 'body': body}
