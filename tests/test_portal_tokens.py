"""Tests for contractor portal links and email engagement tracking."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from swms_api.core.security import generate_portal_token
from swms_api.db.models import (
    EmailCampaign,
    EmailSend,
    NotificationAudit,
    SwmsAuditLog,
    SwmsSubmission,
)
from swms_api.services import portal_token_service, swms_action_dispatcher, timeline_service


@pytest.fixture
def make_send(db, test_user, make_job, make_contractor):
    def _make(
        expires_in: timedelta = timedelta(days=7),
        delivery_status: str = "pending",
        job_status: str = "active",
        with_job: bool = True,
    ) -> EmailSend:
        job = make_job(name="Scaffold erection", status=job_status) if with_job else None
        contractor = make_contractor()
        campaign = EmailCampaign(
            swms_job_id=job.id if job else None,
            campaign_type="manual_reminder",
            status="active",
            message="Please submit your SWMS",
            created_by=test_user.id,
        )
        db.add(campaign)
        db.flush()
        send = EmailSend(
            campaign_id=campaign.id,
            contractor_id=contractor.id,
            email_address=contractor.contact_email,
            portal_token=generate_portal_token(),
            token_expires_at=datetime.now(timezone.utc) + expires_in,
            delivery_status=delivery_status,
        )
        db.add(send)
        db.commit()
        return send

    return _make


# =============================================================================
# Tokens and URLs
# =============================================================================

def test_portal_tokens_are_unguessable_and_unique():
    tokens = {generate_portal_token() for _ in range(200)}
    assert len(tokens) == 200
    # 32 random bytes, URL-safe base64
    assert all(len(token) >= 43 for token in tokens)


def test_portal_urls(monkeypatch):
    monkeypatch.setattr(portal_token_service.settings, "FRONTEND_URL", "https://app.test/")
    monkeypatch.setattr(portal_token_service.settings, "API_BASE_URL", "https://api.test")

    assert portal_token_service.get_portal_url("abc") == "https://app.test/portal/abc"
    assert (
        portal_token_service.get_tracking_pixel_url("abc") == "https://api.test/tracking/open/abc"
    )
    assert (
        portal_token_service.get_tracked_portal_url("abc") == "https://api.test/tracking/click/abc"
    )


# =============================================================================
# Resolution
# =============================================================================

def test_resolve_unknown_token(db):
    with pytest.raises(portal_token_service.PortalTokenNotFound):
        portal_token_service.resolve_portal_token(db, "missing")


def test_resolve_expired_token(db, make_send):
    send = make_send(expires_in=timedelta(hours=-1))

    with pytest.raises(portal_token_service.PortalTokenExpired):
        portal_token_service.resolve_portal_token(db, send.portal_token)


def test_resolve_is_exclusive_at_expiry(db, make_send):
    send = make_send()
    expiry = send.token_expires_at

    with pytest.raises(portal_token_service.PortalTokenExpired):
        portal_token_service.resolve_portal_token(db, send.portal_token, now=expiry)


@pytest.mark.parametrize("job_status", ["planned", "completed", "cancelled"])
def test_resolve_rejects_inactive_job(db, make_send, job_status):
    send = make_send(job_status=job_status)

    with pytest.raises(portal_token_service.PortalJobInactive, match="not currently active"):
        portal_token_service.resolve_portal_token(db, send.portal_token)


def test_resolve_link_without_job(db, make_send):
    send = make_send(with_job=False)

    assert portal_token_service.resolve_portal_token(db, send.portal_token).id == send.id
    assert portal_token_service.list_contractor_submissions(db, send) == []


async def test_portal_endpoint(client: AsyncClient, make_send):
    send = make_send()

    response = await client.get(f"/portal/{send.portal_token}")

    assert response.status_code == 200
    body = response.json()
    assert body["campaign_type"] == "manual_reminder"
    assert body["swms_job_name"] == "Scaffold erection"
    assert body["message"] == "Please submit your SWMS"
    assert body["contractor_id"] == str(send.contractor_id)


async def test_portal_endpoint_unknown_is_404(client: AsyncClient):
    response = await client.get("/portal/not-a-real-token")
    assert response.status_code == 404


async def test_portal_endpoint_expired_is_410(client: AsyncClient, make_send):
    send = make_send(expires_in=timedelta(minutes=-5))

    response = await client.get(f"/portal/{send.portal_token}")

    assert response.status_code == 410
    assert response.json()["detail"] == "Portal link has expired"


async def test_portal_endpoint_inactive_job_is_409(client: AsyncClient, make_send):
    send = make_send(job_status="cancelled")

    response = await client.get(f"/portal/{send.portal_token}")

    assert response.status_code == 409
    assert response.json()["detail"] == "SWMS job is not currently active"


async def test_portal_endpoint_lists_own_submissions_for_job(
    client: AsyncClient, make_send, make_job, make_contractor, make_submission
):
    send = make_send()
    job, contractor = send.campaign.swms_job, send.contractor
    three_days_ago = datetime.now(timezone.utc) - timedelta(days=3)
    older = make_submission(job, contractor, status="rejected", created_at=three_days_ago)
    newer = make_submission(job, contractor)
    # Another contractor on the same job, and the same contractor on another job
    make_submission(job, make_contractor(name="Other Crew", email="crew@other.test"))
    make_submission(make_job(name="Excavation"), contractor)

    response = await client.get(f"/portal/{send.portal_token}")

    assert response.status_code == 200
    submissions = response.json()["submissions"]
    assert [s["id"] for s in submissions] == [str(newer.id), str(older.id)]
    assert [s["status"] for s in submissions] == ["submitted", "rejected"]


# =============================================================================
# Submissions
# =============================================================================

async def test_submit_document_through_portal(client: AsyncClient, db, actor, make_send):
    send = make_send()

    response = await client.post(
        f"/portal/{send.portal_token}/submissions",
        json={"document_name": "  Scaffold SWMS rev2.pdf ", "file_url": "swms/rev2.pdf"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "submitted"
    assert body["document_name"] == "Scaffold SWMS rev2.pdf"
    assert body["submitted_at"] is not None

    submission = db.scalars(select(SwmsSubmission)).one()
    assert str(submission.id) == body["id"]
    assert submission.contractor_id == send.contractor_id
    assert submission.swms_job_id == send.campaign.swms_job_id
    assert submission.file_url == "swms/rev2.pdf"

    change = db.scalars(select(SwmsAuditLog)).one()
    assert change.action_type == "insert"
    assert change.record_id == submission.id
    assert change.changed_by is None
    assert change.new_values["contractor_id"] == str(send.contractor_id)

    status, result = swms_action_dispatcher.dispatch(db, actor, {"action": "compliance-check"})
    assert status == 200
    assert result.data["pendingSubmissions"] == 1
    assert result.data["activeJobs"] == 1

    events = timeline_service.fetch_timeline(db)
    assert f"submission-{submission.id}" in {e.id for e in events}
    created = next(e for e in events if e.title == "Record Created")
    assert created.metadata["record_id"] == str(submission.id)


@pytest.mark.parametrize(
    "send_kwargs,expected_status",
    [
        ({"expires_in": timedelta(minutes=-1)}, 410),
        ({"job_status": "completed"}, 409),
        ({"with_job": False}, 400),
    ],
)
async def test_submit_document_rejected_for_unusable_link(
    client: AsyncClient, db, make_send, send_kwargs, expected_status
):
    send = make_send(**send_kwargs)

    response = await client.post(
        f"/portal/{send.portal_token}/submissions", json={"document_name": "SWMS.pdf"}
    )

    assert response.status_code == expected_status
    assert db.scalars(select(SwmsSubmission)).all() == []


async def test_submit_document_unknown_token_is_404(client: AsyncClient):
    response = await client.post("/portal/nope/submissions", json={"document_name": "SWMS.pdf"})
    assert response.status_code == 404


async def test_submit_document_requires_name(client: AsyncClient, make_send):
    send = make_send()

    response = await client.post(
        f"/portal/{send.portal_token}/submissions", json={"document_name": "   "}
    )

    assert response.status_code == 422


# =============================================================================
# Engagement
# =============================================================================

def test_open_stamps_once_and_promotes_delivery(db, make_send):
    send = make_send()
    first = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)

    assert portal_token_service.record_engagement(db, send.portal_token, "open", now=first)
    assert portal_token_service.record_engagement(
        db, send.portal_token, "open", now=first + timedelta(hours=1)
    )

    db.refresh(send)
    assert send.opened_at.replace(tzinfo=timezone.utc) == first
    assert send.clicked_at is None
    assert send.delivery_status == "delivered"


def test_click_implies_open(db, make_send):
    send = make_send(delivery_status="sent")

    portal_token_service.record_engagement(db, send.portal_token, "click")

    db.refresh(send)
    assert send.clicked_at is not None
    assert send.opened_at == send.clicked_at


def test_engagement_keeps_failed_delivery_status(db, make_send):
    send = make_send(delivery_status="bounced")

    portal_token_service.record_engagement(db, send.portal_token, "open")

    db.refresh(send)
    assert send.delivery_status == "bounced"


def test_engagement_unknown_token_returns_false(db):
    assert portal_token_service.record_engagement(db, "nope", "open") is False


def test_engagement_rejects_unknown_kind(db):
    with pytest.raises(ValueError):
        portal_token_service.record_engagement(db, "any", "forward")


async def test_tracking_pixel_always_returns_gif(client: AsyncClient, db, make_send):
    send = make_send()

    known = await client.get(f"/tracking/open/{send.portal_token}")
    unknown = await client.get("/tracking/open/unknown-token")

    for response in (known, unknown):
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert "no-store" in response.headers["cache-control"]

    db.refresh(send)
    assert send.opened_at is not None


async def test_click_redirects_to_portal(client: AsyncClient, db, make_send):
    send = make_send()

    response = await client.get(f"/tracking/click/{send.portal_token}")

    assert response.status_code == 302
    assert response.headers["location"] == portal_token_service.get_portal_url(send.portal_token)
    db.refresh(send)
    assert send.clicked_at is not None


def test_engagement_writes_tracking_audit_per_event(db, make_send):
    send = make_send()

    portal_token_service.record_engagement(db, send.portal_token, "open")
    portal_token_service.record_engagement(db, send.portal_token, "click")

    audits = list(db.scalars(select(NotificationAudit).order_by(NotificationAudit.id)))
    assert [a.kind for a in audits] == ["swms_email_tracking", "swms_email_tracking"]
    assert [a.payload["event"] for a in audits] == ["open", "click"]
    assert audits[0].payload["send_id"] == str(send.id)
    assert audits[0].payload["contractor_id"] == str(send.contractor_id)
    assert send.portal_token not in str(audits[0].payload)

    events = timeline_service.fetch_timeline(db, contractor_id=send.contractor_id)
    assert [(e.type, e.description) for e in events] == [
        ("email", "Contractor clicked the portal link"),
        ("email", "Contractor opened the email"),
    ]
