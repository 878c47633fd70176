"""Tests for the compliance timeline and audit trail."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from swms_api.schemas.compliance import TimelineEvent
from swms_api.services import swms_action_dispatcher, timeline_service


T0 = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)


def _event(event_id: str, event_type: str, at: datetime) -> TimelineEvent:
    return TimelineEvent(
        id=event_id,
        type=event_type,
        title=event_id,
        description=event_id,
        timestamp=at.isoformat(),
    )


# =============================================================================
# Merge / filter
# =============================================================================

def test_merge_sorts_newest_first_across_sources():
    submissions = [
        _event("s1", "submission", T0),
        _event("s2", "submission", T0 + timedelta(hours=3)),
    ]
    audits = [_event("a1", "audit", T0 + timedelta(hours=1))]
    notifications = [_event("n1", "reminder", T0 + timedelta(hours=2))]

    merged = timeline_service.merge_events(submissions, audits, notifications)

    assert [e.id for e in merged] == ["s2", "n1", "a1", "s1"]
    stamps = [datetime.fromisoformat(e.timestamp) for e in merged]
    assert stamps == sorted(stamps, reverse=True)


def test_merge_breaks_ties_by_source_then_position():
    submissions = [_event("s1", "submission", T0), _event("s2", "status_change", T0)]
    audits = [_event("a1", "audit", T0)]
    notifications = [_event("n1", "email", T0), _event("n2", "reminder", T0)]

    merged = timeline_service.merge_events(
        notifications=notifications, audits=audits, submissions=submissions
    )

    assert [e.id for e in merged] == ["s1", "s2", "a1", "n1", "n2"]


def test_merge_is_deterministic():
    submissions = [_event(f"s{i}", "submission", T0 + timedelta(minutes=i % 3)) for i in range(6)]
    audits = [_event(f"a{i}", "audit", T0 + timedelta(minutes=i % 2)) for i in range(4)]
    notifications = [_event(f"n{i}", "email", T0) for i in range(3)]

    first = timeline_service.merge_events(submissions, audits, notifications)
    second = timeline_service.merge_events(submissions, audits, notifications)

    assert [e.model_dump_json() for e in first] == [e.model_dump_json() for e in second]


def test_merge_compares_instants_not_strings():
    utc = _event("utc", "audit", datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc))
    # 11:30 in +02:00 is 09:30 UTC, earlier than the UTC event
    offset = TimelineEvent(
        id="offset",
        type="submission",
        title="offset",
        description="offset",
        timestamp="2026-04-01T11:30:00+02:00",
    )

    merged = timeline_service.merge_events([offset], [utc], [])

    assert [e.id for e in merged] == ["utc", "offset"]


@pytest.mark.parametrize(
    "category,expected",
    [
        ("all", ["s1", "r1", "a1", "e1", "m1"]),
        ("submissions", ["s1", "r1"]),
        ("emails", ["e1", "m1"]),
        ("audits", ["a1"]),
    ],
)
def test_filter_by_category(category, expected):
    events = [
        _event("s1", "submission", T0),
        _event("r1", "status_change", T0),
        _event("a1", "audit", T0),
        _event("e1", "email", T0),
        _event("m1", "reminder", T0),
    ]

    assert [e.id for e in timeline_service.filter_events(events, category)] == expected


def test_filter_rejects_unknown_category():
    with pytest.raises(ValueError):
        timeline_service.filter_events([], "everything")


# =============================================================================
# Fetch
# =============================================================================

def test_fetch_timeline_includes_all_three_sources(
    db, actor, make_job, make_contractor, make_submission
):
    contractor = make_contractor(name="Steelworks Co")
    submission = make_submission(make_job(name="Steel erection"), contractor)
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "bulk-approve", "parameters": {"approvalCriteria": "Signed off"}}
    )

    events = timeline_service.fetch_timeline(db)

    ids = {e.id for e in events}
    assert f"submission-{submission.id}" in ids
    assert f"review-{submission.id}" in ids

    review = next(e for e in events if e.id == f"review-{submission.id}")
    assert review.title == "SWMS Approved"
    assert review.status == "success"
    assert review.contractor.name == "Steelworks Co"
    assert "Signed off" in review.description

    audit_events = [e for e in events if e.type == "audit"]
    assert any(e.title == "Status Changed" for e in audit_events)
    assert any(e.title == "Bulk Approval" for e in audit_events)


def test_fetch_timeline_maps_notification_kinds(db, actor, make_job, make_contractor):
    make_job()
    make_contractor()
    swms_action_dispatcher.dispatch(db, actor, {"action": "weekly-campaign"})
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "urgent-notification", "parameters": {"urgentMessage": "Stop"}}
    )

    events = timeline_service.fetch_timeline(db)
    by_title = {e.title: e for e in events if e.id.startswith("notification-")}

    assert by_title["Weekly Campaign Launched"].type == "reminder"
    assert by_title["Urgent Safety Alert"].type == "email"
    assert by_title["Urgent Safety Alert"].description == "Urgent alert sent to 1 contractors"


def test_fetch_timeline_shows_failed_actions(db, actor, failing_exporter):
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "generate-report"}, exporter=failing_exporter
    )

    events = timeline_service.fetch_timeline(db)

    assert len(events) == 1
    assert events[0].status == "failed"
    assert events[0].description == "Failed: Failed to generate compliance report"


def test_fetch_timeline_respects_window(db, make_job, make_contractor, make_submission):
    now = datetime.now(timezone.utc)
    job, contractor = make_job(), make_contractor()
    recent = make_submission(job, contractor, created_at=now - timedelta(days=2))
    make_submission(job, contractor, created_at=now - timedelta(days=40))

    events = timeline_service.fetch_timeline(db, days_back=30)

    assert [e.id for e in events] == [f"submission-{recent.id}"]


def test_fetch_timeline_scoped_to_site(
    db, actor, make_site, make_job, make_contractor, make_submission
):
    here, elsewhere = make_site("Here"), make_site("Elsewhere")
    contractor = make_contractor()
    inside = make_submission(make_job(site=here), contractor)
    make_submission(make_job(site=elsewhere), contractor)
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "compliance-check", "job_site_id": str(elsewhere.id)}
    )

    events = timeline_service.fetch_timeline(db, job_site_id=here.id)

    assert [e.id for e in events] == [f"submission-{inside.id}"]


def test_fetch_timeline_scoped_to_contractor(
    db, actor, make_job, make_contractor, make_submission
):
    idle = make_contractor(name="Idle Electrical", email="idle@sparks.test")
    busy = make_contractor(name="Busy Formwork", email="busy@forms.test")
    submission = make_submission(make_job(), busy)
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "bulk-approve", "parameters": {"approvalCriteria": "ok"}}
    )
    swms_action_dispatcher.dispatch(db, actor, {"action": "compliance-check"})

    assert timeline_service.fetch_timeline(db, contractor_id=idle.id) == []

    events = timeline_service.fetch_timeline(db, contractor_id=busy.id)
    assert sorted(e.title for e in events) == [
        "Bulk Approval",
        "SWMS Approved",
        "SWMS Document Submitted",
        "Status Changed",
    ]
    status_change = next(e for e in events if e.title == "Status Changed")
    assert status_change.metadata["record_id"] == str(submission.id)


def test_fetch_timeline_scoped_to_job(db, actor, make_job, make_contractor, make_submission):
    contractor = make_contractor()
    first, second = make_job(name="Roof framing"), make_job(name="Demolition")
    inside = make_submission(first, contractor)
    make_submission(second, contractor)
    swms_action_dispatcher.dispatch(db, actor, {"action": "weekly-campaign"})
    swms_action_dispatcher.dispatch(
        db,
        actor,
        {
            "action": "urgent-notification",
            "swms_job_id": str(second.id),
            "parameters": {"urgentMessage": "Asbestos found"},
        },
    )
    swms_action_dispatcher.dispatch(db, actor, {"action": "pause-campaigns"})

    events = timeline_service.fetch_timeline(db, swms_job_id=first.id)

    assert sorted(e.title for e in events) == [
        "Campaigns Paused",
        "SWMS Document Submitted",
        "Status Changed",
        "Weekly Campaign Launched",
    ]
    assert f"submission-{inside.id}" in {e.id for e in events}
    assert all(e.title != "Urgent Safety Alert" for e in events)


def test_pending_submission_has_no_submitted_event(db, make_job, make_contractor, make_submission):
    make_submission(make_job(), make_contractor(), status="pending")

    assert timeline_service.fetch_timeline(db) == []


# =============================================================================
# API
# =============================================================================

async def test_timeline_endpoint_filters_category(
    authed_client: AsyncClient, db, actor, make_job, make_contractor, make_submission
):
    make_submission(make_job(), make_contractor())
    swms_action_dispatcher.dispatch(db, actor, {"action": "weekly-campaign"})

    response = await authed_client.get(
        "/admin/compliance/timeline", params={"category": "emails"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["category"] == "emails"
    assert [e["type"] for e in body["timeline"]] == ["reminder"]


async def test_timeline_endpoint_scoped_to_contractor(
    authed_client: AsyncClient, db, actor, make_job, make_contractor, make_submission
):
    idle = make_contractor(name="Idle Electrical", email="idle@sparks.test")
    make_submission(make_job(), make_contractor(name="Busy Formwork", email="busy@forms.test"))
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "bulk-approve", "parameters": {"approvalCriteria": "ok"}}
    )

    response = await authed_client.get(
        "/admin/compliance/timeline", params={"contractor_id": str(idle.id)}
    )

    assert response.status_code == 200
    assert response.json()["timeline"] == []


async def test_timeline_endpoint_rejects_bad_category(authed_client: AsyncClient):
    response = await authed_client.get(
        "/admin/compliance/timeline", params={"category": "everything"}
    )
    assert response.status_code == 422


async def test_timeline_requires_auth(client: AsyncClient):
    response = await client.get("/admin/compliance/timeline")
    assert response.status_code == 401


async def test_audit_trail_lists_changes_with_actor_email(
    authed_client: AsyncClient, db, actor, test_user, make_job, make_contractor, make_submission
):
    submission = make_submission(make_job(), make_contractor())
    swms_action_dispatcher.dispatch(
        db, actor, {"action": "bulk-approve", "parameters": {"approvalCriteria": "OK"}}
    )

    response = await authed_client.get("/admin/compliance/audit-trail")

    assert response.status_code == 200
    trail = response.json()["audit_trail"]
    assert len(trail) == 1
    assert trail[0]["record_id"] == str(submission.id)
    assert trail[0]["action_type"] == "status_update"
    assert trail[0]["changed_by_email"] == test_user.email


async def test_audit_trail_rejects_inverted_range(authed_client: AsyncClient):
    response = await authed_client.get(
        "/admin/compliance/audit-trail",
        params={"start_date": "2026-05-02T00:00:00Z", "end_date": "2026-05-01T00:00:00Z"},
    )
    assert response.status_code == 400
