"""
Email Service using Resend

Transactional emails for the recommendation workflow:
- Request invitations to recipients (with the secure portal link)
- Deadline reminders to recipients
- Receipt confirmations to students
"""

import asyncio
import logging
from datetime import datetime
from html import escape

import resend

from letterflow.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_BASE_STYLE = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .button { display: inline-block; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def portal_url(token: str) -> str:
    """Recipient portal link for a request's secure token."""
    return f"{settings.frontend_url.rstrip('/')}/recommendation/{token}"


def _format_deadline(deadline: datetime) -> str:
    return f"{deadline:%B} {deadline.day}, {deadline.year}"


def _plural_days(days: int) -> str:
    return f"{days} day{'s' if days != 1 else ''}"


def _wrap(title: str, body: str, footer: str, extra_style: str = "") -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_BASE_STYLE}{extra_style}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body}
            <div class="footer">
                {footer}
                <p>Letterflow - Recommendation Letters</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
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
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_recommendation_request(
    to_email: str,
    recipient_name: str,
    student_name: str,
    request_title: str,
    deadline: datetime,
    token: str,
    draft_content: str | None = None,
    purpose: str | None = None,
) -> bool:
    """Invite a recipient to write a letter, with an optional student draft."""
    safe_recipient = escape(recipient_name)
    safe_student = escape(student_name)
    safe_title = escape(request_title)
    link = portal_url(token)
    deadline_text = _format_deadline(deadline)

    purpose_html = f"<p><strong>Purpose:</strong> {escape(purpose)}</p>" if purpose else ""

    draft_html = ""
    if draft_content:
        safe_draft = escape(draft_content).replace("\n", "<br>")
        draft_html = f"""
            <div class="draft-box">
                <h3 style="margin-top: 0;">Draft Content (Optional)</h3>
                <p>{safe_student} has provided a draft that you may use as a starting point:</p>
                <div style="background-color: white; padding: 12px; border-radius: 6px;">{safe_draft}</div>
            </div>
        """

    body = f"""
            <p>Dear {safe_recipient},</p>

            <p>{safe_student} has requested a recommendation letter from you.</p>

            <div class="info-box">
                <p><strong>{safe_title}</strong></p>
                {purpose_html}
                <p><strong>Deadline:</strong> {deadline_text}</p>
            </div>

            <p>To submit your recommendation letter, please click the button below:</p>

            <a href="{link}" class="button" style="background-color: #1a365d;">Submit Recommendation Letter</a>

            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #3b82f6;">{link}</p>

            {draft_html}

            <p>Thank you for your time and consideration.</p>
    """
    html_content = _wrap(
        "Recommendation Letter Request",
        body,
        "<p>This is an automated message. If you have questions, please contact the student directly.</p>",
        extra_style=(
            "\n            .draft-box { background-color: #fff3cd; border: 1px solid #ffeaa7;"
            " padding: 16px; border-radius: 8px; margin: 16px 0; }"
        ),
    )
    return await send_email(
        to_email=to_email,
        subject=f"Recommendation Letter Request - {safe_student}",
        html_content=html_content,
    )


async def send_recommendation_reminder(
    to_email: str,
    recipient_name: str,
    student_name: str,
    request_title: str,
    deadline: datetime,
    token: str,
    days_until_deadline: int,
    urgency_message: str | None = None,
) -> bool:
    """Remind a recipient that a letter is still outstanding."""
    safe_recipient = escape(recipient_name)
    safe_student = escape(student_name)
    safe_title = escape(request_title)
    link = portal_url(token)
    remaining = _plural_days(days_until_deadline)

    urgency_html = (
        f'<p style="color: #b91c1c;"><strong>{escape(urgency_message)}</strong></p>'
        if urgency_message
        else ""
    )

    body = f"""
            <p>Dear {safe_recipient},</p>

            <p>This is a reminder that you have a pending recommendation letter request from {safe_student}.</p>

            {urgency_html}

            <div class="info-box">
                <p><strong>{safe_title}</strong></p>
                <p><strong>Deadline:</strong> {_format_deadline(deadline)}</p>
                <p><strong>Time remaining:</strong> {remaining}</p>
            </div>

            <a href="{link}" class="button" style="background-color: #dc2626;">Submit Recommendation Letter</a>

            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #3b82f6;">{link}</p>
    """
    html_content = _wrap(
        "Recommendation Letter Reminder",
        body,
        "<p>This is an automated reminder. If you have questions, please contact the student directly.</p>",
    )
    return await send_email(
        to_email=to_email,
        subject=f"Reminder: Recommendation Letter for {safe_student} - Due in {remaining}",
        html_content=html_content,
    )


async def send_letter_received(
    to_email: str,
    student_name: str,
    recipient_name: str,
    request_title: str,
) -> bool:
    """Tell the student their recommender has submitted."""
    safe_student = escape(student_name)
    safe_recipient = escape(recipient_name)
    safe_title = escape(request_title)

    body = f"""
            <p>Dear {safe_student},</p>

            <p>Good news! {safe_recipient} has submitted your recommendation letter.</p>

            <div class="info-box">
                <p><strong>{safe_title}</strong></p>
                <p><strong>Submitted by:</strong> {safe_recipient}</p>
                <p><strong>Status:</strong> Received</p>
            </div>

            <p>You can view and download the letter from your dashboard.</p>

            <a href="{settings.frontend_url.rstrip('/')}/dashboard/recommendations" class="button" style="background-color: #16a34a;">Open Dashboard</a>
    """
    html_content = _wrap(
        "Recommendation Letter Received",
        body,
        "<p>This is an automated message. Please do not reply to this email.</p>",
    )
    return await send_email(
        to_email=to_email,
        subject=f"Recommendation Letter Received - {safe_title}",
        html_content=html_content,
    )
