"""
HTTP tests for the recommendation routers.

These tests cover:
- Recipient portal: generic 404 for unknown/expired/cancelled links,
  storage outage hints, fallback upload, submission, rate limiting
- Student endpoints: ownership 404, cancel alias, send rate limit
- Admin endpoints: letter verification and overdue listing

The service layer is patched; routers are mounted on a bare app with
dependency overrides for the session, storage and authenticated user.
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from letterflow.core.auth import get_current_admin_user, get_current_student
from letterflow.core.database import get_db
from letterflow.core.storage import StoredObject, UploadTarget, get_storage
from letterflow.modules.recommendations import router as student_router
from letterflow.modules.recommendations import service
from letterflow.modules.recommendations.admin_router import router as admin_router
from letterflow.modules.recommendations.errors import (
    RequestCancelledError,
    RequestNotFoundError,
    StorageUnavailableError,
    TokenExpiredError,
    TokenNotFoundError,
    ValidationFailedError,
)
from letterflow.modules.recommendations.models import (
    ReminderFrequency,
    RequestPriority,
    RequestStatus,
)
from letterflow.modules.recommendations.recipient_router import router as portal_router
from letterflow.modules.recommendations.schemas import OverdueRequestItem

VALID_TOKEN = "a" * 64
PORTAL = f"/recommendations/recipient/{VALID_TOKEN}"


def _letter(request_id, version=1):
    return SimpleNamespace(
        id=uuid4(),
        request_id=request_id,
        version=version,
        previous_version_id=None,
        content="It is my pleasure to recommend Ama.",
        file_name=None,
        file_type=None,
        file_size=None,
        submitted_at=datetime.now(UTC),
        submitted_by="k.owusu@ug.edu.gh",
        is_verified=False,
        verification_notes=None,
        verified_at=None,
    )


def _request(status=RequestStatus.SENT):
    now = datetime.now(UTC)
    return SimpleNamespace(
        id=uuid4(),
        recipient=SimpleNamespace(
            id=uuid4(),
            name="Dr. Kofi Owusu",
            title="Professor",
            institution="University of Ghana",
            primary_email="k.owusu@ug.edu.gh",
        ),
        title="Graduate School Application",
        description="MSc Computer Science, fall intake",
        deadline=now + timedelta(days=10),
        status=status,
        priority=RequestPriority.MEDIUM,
        include_draft=True,
        draft_content="Draft text",
        relationship_context=None,
        additional_context=None,
        application_id=None,
        scholarship_id=None,
        reminder_intervals=[7, 3, 1],
        reminder_frequency=ReminderFrequency.STANDARD,
        next_reminder_date=None,
        last_reminder_sent=None,
        token_expires_at=None,
        sent_at=None,
        received_at=None,
        cancelled_at=None,
        created_at=now,
        updated_at=now,
        student_name="Ama Mensah",
    )


@pytest.fixture
def app(mock_db, student, admin):
    application = FastAPI()
    application.include_router(portal_router, prefix="/recommendations/recipient")
    application.include_router(student_router, prefix="/recommendations/requests")
    application.include_router(admin_router, prefix="/admin/recommendations")

    async def override_db():
        yield mock_db

    application.dependency_overrides[get_db] = override_db
    application.dependency_overrides[get_storage] = lambda: MagicMock()
    application.dependency_overrides[get_current_student] = lambda: student
    application.dependency_overrides[get_current_admin_user] = lambda: admin
    return application


@pytest.fixture
def rate_limit_allowed():
    with (
        patch("letterflow.core.rate_limit.check_rate_limit", AsyncMock(return_value=True)) as m,
        patch(
            "letterflow.modules.recommendations.admin_router.check_rate_limit",
            AsyncMock(return_value=True),
        ),
    ):
        yield m


@pytest.fixture
def client(app, rate_limit_allowed):
    return TestClient(app)


class TestRecipientPortal:
    """Tests for the recipient portal endpoints."""

    def test_view_request(self, client):
        rec_request = _request()
        with patch.object(
            service,
            "get_recipient_view",
            AsyncMock(return_value=(rec_request, rec_request.recipient, None)),
        ):
            response = client.get(PORTAL)

        assert response.status_code == 200
        body = response.json()
        assert body["request_id"] == str(rec_request.id)
        assert body["recipient_name"] == "Dr. Kofi Owusu"
        assert body["draft_content"] == "Draft text"
        assert body["days_until_deadline"] == 10
        assert body["latest_letter"] is None

    def test_draft_hidden_unless_included(self, client):
        rec_request = _request()
        rec_request.include_draft = False
        with patch.object(
            service,
            "get_recipient_view",
            AsyncMock(return_value=(rec_request, rec_request.recipient, None)),
        ):
            response = client.get(PORTAL)

        assert response.json()["draft_content"] is None

    @pytest.mark.parametrize(
        "error", [TokenNotFoundError(), TokenExpiredError(), RequestCancelledError()]
    )
    def test_invalid_links_look_the_same(self, client, error):
        with patch.object(service, "get_recipient_view", AsyncMock(side_effect=error)):
            response = client.get(PORTAL)

        assert response.status_code == 404
        assert response.json()["detail"] == {
            "error": "LINK_INVALID",
            "message": "This link is no longer valid.",
        }

    def test_acknowledge(self, client):
        rec_request = _request(RequestStatus.PENDING)
        with patch.object(
            service, "acknowledge_request", AsyncMock(return_value=rec_request)
        ):
            response = client.post(f"{PORTAL}/acknowledge")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_upload_target(self, client):
        target = UploadTarget(
            upload_url="https://bucket.s3.amazonaws.com/put?sig=1",
            file_url="https://bucket.s3.amazonaws.com/recommendations/x/y.pdf",
            key="recommendations/x/y.pdf",
            content_type="application/pdf",
            expires_at=datetime.now(UTC) + timedelta(minutes=5),
        )
        with patch.object(
            service, "create_recipient_upload", AsyncMock(return_value=target)
        ):
            response = client.post(
                f"{PORTAL}/upload",
                json={
                    "file_name": "letter.pdf",
                    "content_type": "application/pdf",
                    "file_size": 2048,
                },
            )

        assert response.status_code == 200
        assert response.json()["key"] == "recommendations/x/y.pdf"

    def test_oversized_upload_rejected(self, client):
        error = ValidationFailedError("File size exceeds 10MB limit", field="file_size")
        with patch.object(service, "create_recipient_upload", AsyncMock(side_effect=error)):
            response = client.post(
                f"{PORTAL}/upload",
                json={
                    "file_name": "letter.pdf",
                    "content_type": "application/pdf",
                    "file_size": 12 * 1024 * 1024,
                },
            )

        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "file_size"

    def test_storage_outage_points_to_fallback(self, client):
        with patch.object(
            service,
            "create_recipient_upload",
            AsyncMock(side_effect=StorageUnavailableError(retry_after_seconds=30)),
        ):
            response = client.post(
                f"{PORTAL}/upload",
                json={
                    "file_name": "letter.pdf",
                    "content_type": "application/pdf",
                    "file_size": 2048,
                },
            )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        detail = response.json()["detail"]
        assert detail["error"] == "STORAGE_UNAVAILABLE"
        assert detail["fallback"] == "upload-fallback"

    def test_fallback_upload(self, client):
        stored = StoredObject(
            key="recommendations/x/y.pdf",
            file_url="https://bucket.s3.amazonaws.com/recommendations/x/y.pdf",
            content_type="application/pdf",
            size=9,
        )
        with patch.object(
            service, "upload_recipient_fallback", AsyncMock(return_value=stored)
        ) as mock_upload:
            response = client.post(
                f"{PORTAL}/upload-fallback",
                files={"file": ("letter.pdf", b"%PDF-1.4\n", "application/pdf")},
                data={"key": "recommendations/x/y.pdf"},
            )

        assert response.status_code == 200
        assert response.json()["file_size"] == 9
        kwargs = mock_upload.call_args.kwargs
        assert kwargs["data"] == b"%PDF-1.4\n"
        assert kwargs["content_type"] == "application/pdf"
        assert kwargs["key"] == "recommendations/x/y.pdf"

    def test_submit_letter(self, client):
        rec_request = _request(RequestStatus.RECEIVED)
        letter = _letter(rec_request.id)
        with patch.object(
            service,
            "submit_recipient_letter",
            AsyncMock(return_value=(rec_request, letter)),
        ):
            response = client.post(
                f"{PORTAL}/submit", json={"content": "It is my pleasure to recommend Ama."}
            )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "received"
        assert body["letter"]["version"] == 1

    def test_submit_without_content_or_file(self, client):
        response = client.post(f"{PORTAL}/submit", json={"content": "   "})
        assert response.status_code == 422

    def test_submit_on_expired_link(self, client):
        with patch.object(
            service, "submit_recipient_letter", AsyncMock(side_effect=TokenExpiredError())
        ):
            response = client.post(f"{PORTAL}/submit", json={"content": "Letter"})

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "LINK_INVALID"

    def test_rate_limited(self, client, rate_limit_allowed):
        rate_limit_allowed.return_value = False

        response = client.get(PORTAL)

        assert response.status_code == 429
        assert response.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"


class TestStudentEndpoints:
    """Tests for the student request endpoints."""

    def test_other_students_request_is_not_found(self, client):
        with patch.object(
            service, "get_request_detail", AsyncMock(side_effect=RequestNotFoundError())
        ):
            response = client.get(f"/recommendations/requests/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "REQUEST_NOT_FOUND"

    def test_detail_includes_latest_letter(self, client):
        rec_request = _request(RequestStatus.RECEIVED)
        letter = _letter(rec_request.id, version=2)
        with patch.object(
            service, "get_request_detail", AsyncMock(return_value=(rec_request, letter))
        ):
            response = client.get(f"/recommendations/requests/{rec_request.id}")

        assert response.status_code == 200
        assert response.json()["latest_letter"]["version"] == 2

    def test_delete_cancels(self, client):
        rec_request = _request(RequestStatus.CANCELLED)
        with patch.object(
            service, "cancel_request", AsyncMock(return_value=rec_request)
        ) as mock_cancel:
            response = client.delete(f"/recommendations/requests/{rec_request.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        mock_cancel.assert_called_once()

    def test_send_is_rate_limited(self, client, rate_limit_allowed):
        rate_limit_allowed.return_value = False

        with patch.object(service, "send_request", AsyncMock()) as mock_send:
            response = client.post(f"/recommendations/requests/{uuid4()}/send")

        assert response.status_code == 429
        mock_send.assert_not_called()


class TestAdminEndpoints:
    def test_verify_letter(self, client, admin):
        letter = _letter(uuid4())
        letter.is_verified = True
        letter.verification_notes = "Checked"
        with patch(
            "letterflow.modules.recommendations.admin_router.letters.verify_letter",
            AsyncMock(return_value=letter),
        ) as mock_verify:
            response = client.post(
                f"/admin/recommendations/letters/{letter.id}/verify", json={"notes": "Checked"}
            )

        assert response.status_code == 200
        assert response.json()["is_verified"] is True
        assert mock_verify.call_args.args[2] == admin.id

    def test_overdue(self, client):
        item = OverdueRequestItem(
            id=uuid4(),
            title="Graduate School Application",
            status=RequestStatus.SENT,
            deadline=datetime.now(UTC) - timedelta(days=1),
            days_overdue=1,
            student_id=uuid4(),
            student_email="ama@student.edu",
            recipient_name="Dr. Kofi Owusu",
            recipient_email="k.owusu@ug.edu.gh",
        )
        with patch.object(service, "list_overdue", AsyncMock(return_value=[item])):
            response = client.get("/admin/recommendations/overdue")

        assert response.status_code == 200
        assert response.json()["total"] == 1
