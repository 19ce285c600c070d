"""
Reminder Schedule Calculations

Pure functions deciding when recipients get deadline reminders. Nothing
here touches the database or the clock; ``now`` is always passed in.

A request carries ``reminder_intervals``: day counts before the deadline
at which a reminder is due, e.g. ``[7, 3, 1]``. Each interval is a
threshold. A threshold is satisfied once a reminder has been sent for it
(``last_reminder_interval``), and satisfying a threshold also satisfies
every larger one. When several thresholds have passed since the last
scan, only one reminder is sent, for the most urgent of them.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from letterflow.modules.recommendations.models import ReminderFrequency

DEFAULT_REMINDER_INTERVALS = [7, 3, 1]

FREQUENCY_PRESETS: dict[ReminderFrequency, list[int]] = {
    ReminderFrequency.MINIMAL: [3],
    ReminderFrequency.STANDARD: DEFAULT_REMINDER_INTERVALS,
    ReminderFrequency.FREQUENT: [14, 7, 3, 1],
}

URGENCY_CRITICAL = "critical"
URGENCY_HIGH = "high"
URGENCY_MEDIUM = "medium"
URGENCY_LOW = "low"


class ReminderTarget(Protocol):
    deadline: datetime
    reminder_intervals: list[int]
    last_reminder_interval: int | None


@dataclass(frozen=True)
class ReminderDecision:
    """Outcome of evaluating one request at one instant."""

    send: bool
    threshold: int | None
    days_until: int
    next_reminder_date: datetime | None


def normalize_intervals(intervals: list[int]) -> list[int]:
    """
    Unique, positive, descending.

    Raises:
        ValueError: If the list is empty or holds a non-positive value
    """
    if not intervals:
        raise ValueError("At least one reminder interval is required")
    if any(int(days) <= 0 for days in intervals):
        raise ValueError("Reminder intervals must be positive day counts")
    return sorted({int(days) for days in intervals}, reverse=True)


def intervals_for_frequency(frequency: ReminderFrequency) -> list[int]:
    """
    Preset intervals for a named frequency.

    Raises:
        ValueError: For ``custom``, which has no preset
    """
    if frequency not in FREQUENCY_PRESETS:
        raise ValueError(f"Reminder frequency '{frequency.value}' requires explicit intervals")
    return list(FREQUENCY_PRESETS[frequency])


def resolve_intervals(
    intervals: list[int] | None,
    frequency: ReminderFrequency | None,
) -> tuple[list[int], ReminderFrequency]:
    """
    Pick the intervals and frequency to store for a request.

    Explicit intervals win; without a frequency they are stored as
    ``custom``. With neither, the standard preset is used.
    """
    if intervals is not None:
        return normalize_intervals(intervals), frequency or ReminderFrequency.CUSTOM
    frequency = frequency or ReminderFrequency.STANDARD
    return intervals_for_frequency(frequency), frequency


def days_until_deadline(deadline: datetime, now: datetime) -> int:
    """Whole days left, rounded up. Zero or negative once the deadline has passed."""
    return math.ceil((deadline - now) / timedelta(days=1))


def due_threshold(intervals: list[int], days_until: int) -> int | None:
    """Smallest interval that ``days_until`` has reached, or None."""
    reached = [days for days in intervals if days >= days_until]
    return min(reached) if reached else None


def next_threshold(intervals: list[int], satisfied: int) -> int | None:
    """Largest interval below the one just satisfied, or None."""
    smaller = [days for days in intervals if days < satisfied]
    return max(smaller) if smaller else None


def reminder_date_for(deadline: datetime, interval: int) -> datetime:
    return deadline - timedelta(days=interval)


def first_reminder_date(deadline: datetime, intervals: list[int]) -> datetime | None:
    """When the first reminder becomes due after a request is sent."""
    if not intervals:
        return None
    return reminder_date_for(deadline, max(intervals))


def pending_reminder_date(
    deadline: datetime,
    intervals: list[int],
    last_interval: int | None,
) -> datetime | None:
    """Date of the next unsatisfied threshold, or None when all are satisfied."""
    if last_interval is None:
        return first_reminder_date(deadline, intervals)
    pending = next_threshold(intervals, last_interval)
    return reminder_date_for(deadline, pending) if pending is not None else None


def evaluate_reminder(request: ReminderTarget, now: datetime) -> ReminderDecision:
    """
    Decide whether a reminder is due now and where the cursor moves next.

    Status and deadline filtering is the caller's job. Here a threshold
    is due when ``days_until`` has reached it and no reminder has been
    sent for it or a smaller one.
    """
    intervals = normalize_intervals(request.reminder_intervals)
    days_until = days_until_deadline(request.deadline, now)
    threshold = due_threshold(intervals, days_until)

    already_satisfied = (
        threshold is None
        or (
            request.last_reminder_interval is not None
            and request.last_reminder_interval <= threshold
        )
    )

    if already_satisfied:
        return ReminderDecision(
            send=False,
            threshold=None,
            days_until=days_until,
            next_reminder_date=pending_reminder_date(
                request.deadline, intervals, request.last_reminder_interval
            ),
        )

    following = next_threshold(intervals, threshold)
    return ReminderDecision(
        send=True,
        threshold=threshold,
        days_until=days_until,
        next_reminder_date=(
            reminder_date_for(request.deadline, following) if following is not None else None
        ),
    )


def urgency_level(days_until: int) -> str:
    if days_until <= 1:
        return URGENCY_CRITICAL
    if days_until <= 3:
        return URGENCY_HIGH
    if days_until <= 7:
        return URGENCY_MEDIUM
    return URGENCY_LOW


def urgency_message(days_until: int, level: str | None = None) -> str:
    """Human wording shown at the top of reminder emails."""
    level = level or urgency_level(days_until)
    if level == URGENCY_CRITICAL:
        return "URGENT: This recommendation is due TOMORROW! Please submit as soon as possible."
    if level == URGENCY_HIGH:
        return (
            f"IMPORTANT: This recommendation is due in {days_until} days. "
            "Please prioritize this request."
        )
    if level == URGENCY_MEDIUM:
        return (
            f"REMINDER: This recommendation is due in {days_until} days. "
            "Please plan to submit soon."
        )
    return f"Friendly reminder: This recommendation is due in {days_until} days."
