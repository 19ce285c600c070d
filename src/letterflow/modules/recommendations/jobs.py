"""
Recommendation Background Jobs

Scheduled reminder scan for outstanding recommendation requests.

Each run:
1. Finds sent/pending requests whose reminder cursor
   (``next_reminder_date``) has come due and whose deadline is ahead
2. Sends at most one reminder per request, for the most urgent threshold
   reached, and moves the cursor to the next smaller threshold
3. Reports sent/pending requests whose deadline has passed as overdue
   (they are never cancelled automatically)

Design Principles:
- Idempotent: the cursor moves past a threshold once it is handled, so an
  immediate second run sends nothing
- Each request is processed in its own session and re-checked there
- Individual failures are logged and counted; the scan continues
- The cursor moves even when the email fails, so a broken address does
  not get retried every run

Schedule:
- Runs every ``REMINDER_INTERVAL_MINUTES`` (default hourly)
- Can also be triggered via the debug endpoints or
  ``scripts/run_reminder_scan.py``
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger

from letterflow.core.config import settings
from letterflow.core.database import async_session_maker
from letterflow.core.email import send_recommendation_reminder
from letterflow.core.scheduler import register_job
from letterflow.modules.recommendations import reminders, repository
from letterflow.modules.recommendations.models import RequestStatus
from letterflow.modules.recommendations.repository import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

JOB_ID_SEND_REMINDERS = "recommendations_send_reminders"


async def _process_reminder(request_id: UUID, now: datetime) -> dict[str, Any]:
    """
    Evaluate and (maybe) send one reminder.

    The request is loaded again in a fresh session so a submission or
    cancellation that landed after the scan query is respected.
    """
    async with async_session_maker() as db:
        request = await repository.get_request(db, request_id)

        if (
            request is None
            or request.status not in ACTIVE_STATUSES
            or request.deadline <= now
            or request.secure_token is None
        ):
            return {"request_id": str(request_id), "status": "skipped", "reason": "not_active"}

        decision = reminders.evaluate_reminder(request, now)

        if not decision.send:
            # Cursor was stale; move it without emailing
            request.next_reminder_date = decision.next_reminder_date
            await db.commit()
            return {
                "request_id": str(request_id),
                "status": "skipped",
                "reason": "threshold_already_satisfied",
            }

        level = reminders.urgency_level(decision.days_until)
        email_sent = await send_recommendation_reminder(
            to_email=request.recipient.primary_email,
            recipient_name=request.recipient.name,
            student_name=request.student_name,
            request_title=request.title,
            deadline=request.deadline,
            token=request.secure_token,
            days_until_deadline=decision.days_until,
            urgency_message=reminders.urgency_message(decision.days_until, level),
        )

        if not email_sent:
            logger.error(f"Failed to send reminder email for request {request_id}")

        await repository.mark_reminder_sent(
            db,
            request,
            sent_at=now,
            threshold=decision.threshold,
            next_reminder_date=decision.next_reminder_date,
        )

        logger.info(
            f"Reminder for request {request_id}: threshold {decision.threshold}d, "
            f"{decision.days_until}d left, urgency {level}"
        )

        return {
            "request_id": str(request_id),
            "status": "sent" if email_sent else "marked_sent_email_failed",
            "threshold": decision.threshold,
            "days_until_deadline": decision.days_until,
            "urgency": level,
        }


async def send_recommendation_reminders(now: datetime | None = None) -> dict[str, Any]:
    """
    Send due reminders and collect overdue requests.

    Args:
        now: Evaluation instant (defaults to the current UTC time)

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - reminders: Per-request results
        - overdue: Requests past their deadline
        - total_sent: Reminders delivered to the email provider
        - total_email_failed: Reminders recorded whose email failed
        - total_errors: Number of processing errors
    """
    now = now or datetime.now(UTC)

    logger.info(f"Starting recommendation reminder job at {now.isoformat()}")

    results: dict[str, Any] = {
        "executed_at": now.isoformat(),
        "reminders": [],
        "overdue": [],
        "total_sent": 0,
        "total_email_failed": 0,
        "total_errors": 0,
    }

    async with async_session_maker() as db:
        due_ids = [request.id for request in await repository.get_requests_due_for_reminder(db, now)]

    logger.info(f"Found {len(due_ids)} requests with a reminder due")

    for request_id in due_ids:
        try:
            result = await _process_reminder(request_id, now)
            results["reminders"].append(result)
            if result["status"] == "sent":
                results["total_sent"] += 1
            elif result["status"] == "marked_sent_email_failed":
                results["total_email_failed"] += 1
        except Exception as e:
            logger.error(f"Error processing reminder for request {request_id}: {e}", exc_info=True)
            results["reminders"].append(
                {"request_id": str(request_id), "status": "error", "error": str(e)}
            )
            results["total_errors"] += 1

    async with async_session_maker() as db:
        overdue = await repository.get_overdue_requests(db, now)

    for request in overdue:
        logger.warning(
            f"Recommendation request {request.id} is overdue "
            f"(deadline {request.deadline.isoformat()}, status {request.status.value})"
        )
        results["overdue"].append(
            {
                "request_id": str(request.id),
                "deadline": request.deadline.isoformat(),
                "status": RequestStatus(request.status).value,
            }
        )

    logger.info(
        f"Recommendation reminder job completed. "
        f"Sent: {results['total_sent']}, Email failed: {results['total_email_failed']}, "
        f"Overdue: {len(results['overdue'])}, "
        f"Errors: {results['total_errors']}"
    )

    return results


def register_recommendation_jobs() -> None:
    """Register the reminder scan with the scheduler."""
    register_job(
        job_id=JOB_ID_SEND_REMINDERS,
        func=send_recommendation_reminders,
        trigger=IntervalTrigger(minutes=settings.reminder_interval_minutes),
    )
    logger.info(
        f"Registered job: {JOB_ID_SEND_REMINDERS} "
        f"(interval: {settings.reminder_interval_minutes} minutes)"
    )
