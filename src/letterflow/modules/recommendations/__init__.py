"""
Recommendations Module

Handles the recommendation letter workflow:
1. Students create requests addressed to their recipients and send them
2. Recipients open a secure emailed link (no login), upload and submit
   letters; every submission is a new letter version
3. Reminders go out at configured days before the deadline
4. Admins verify letters and monitor overdue requests

API Endpoints:
- /recommendations/requests/... - Student dashboard (JWT)
- /recommendations/recipient/{token}/... - Recipient portal (secure token)
- /admin/recommendations/... - Platform admin (JWT, super_admin)

Background Jobs (via APScheduler):
- send_recommendation_reminders: Runs hourly by default
"""

from .jobs import register_recommendation_jobs
from .router import router

__all__ = ["router", "register_recommendation_jobs"]
