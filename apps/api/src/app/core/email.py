"""
Email Service using Resend

Outbound notifications for the admissions flow. Without a RESEND_API_KEY
messages are logged instead of sent, which keeps local development quiet.
"""

import asyncio
import logging
from html import escape

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_BASE_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1a365d; margin-bottom: 24px; }
    .number { font-size: 24px; font-weight: bold; letter-spacing: 2px; color: #1a365d; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(title: str, body_html: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{_BASE_STYLE}</style></head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body_html}
            <div class="footer">
                <p>Admissions Office</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    Send an email using Resend.

    Returns:
        True if the email was sent (or logged when no API key is configured)
    """
    if not resend.api_key:
        logger.info(f"RESEND_API_KEY not set - EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_applicant_number_assigned(
    to_email: str,
    applicant_name: str,
    applicant_number: str,
) -> bool:
    """Tell a newly registered applicant their applicant number."""
    safe_name = escape(applicant_name)
    portal_url = f"{settings.frontend_url}/applicant/requirements"
    body = f"""
        <p>Hello {safe_name},</p>
        <p>Your registration was received. Your applicant number is:</p>
        <p class="number">{escape(applicant_number)}</p>
        <p>Use it in all correspondence with the Admissions Office. You can upload
        your admission requirements at <a href="{portal_url}">{portal_url}</a>.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Your applicant number is {applicant_number}",
        html_content=_render("Registration Received", body),
    )


async def send_documents_confirmed(
    to_email: str,
    applicant_name: str,
    applicant_number: str,
) -> bool:
    """Tell an applicant the registrar has confirmed their submitted documents."""
    safe_name = escape(applicant_name)
    body = f"""
        <p>Hello {safe_name},</p>
        <p>The Registrar has confirmed the documents submitted under applicant number
        <strong>{escape(applicant_number)}</strong>.</p>
        <p>No further uploads are needed unless the Admissions Office contacts you.</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Documents confirmed for applicant {applicant_number}",
        html_content=_render("Documents Confirmed", body),
    )
