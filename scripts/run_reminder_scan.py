"""
Run Reminder Scan

Runs one recommendation reminder scan outside the API process, for
deployments that schedule it with cron instead of the in-process
scheduler (set SCHEDULER_ENABLED=false on the API).

Usage:
    python scripts/run_reminder_scan.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from letterflow.core.database import close_db
from letterflow.modules.recommendations.jobs import send_recommendation_reminders


async def run_scan() -> int:
    try:
        result = await send_recommendation_reminders()
    finally:
        await close_db()

    print(f"Reminder scan at {result['executed_at']}")
    print(f"  Reminders sent: {result['total_sent']}")
    print(f"  Reminder emails failed: {result['total_email_failed']}")
    print(f"  Overdue requests: {len(result['overdue'])}")
    print(f"  Errors: {result['total_errors']}")

    return 1 if result["total_errors"] else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    sys.exit(asyncio.run(run_scan()))
