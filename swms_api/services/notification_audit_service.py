"""Notification audit and change-log writers.

notification_audits is the append-only record of campaign actions;
swms_audit_log is the row-level change log. Neither table is ever updated.

Payload guidelines:
- IDs instead of names or contact details
- No portal tokens (they are credentials)
- Free-text justifications are kept verbatim; they are the compliance record
"""

import json
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.orm import Session

from swms_api.db.enums import AuditResult, ChangeLogAction, NotificationAuditKind
from swms_api.db.models import NotificationAudit, SwmsAuditLog
from swms_api.db.models.common import utcnow


def _json_safe(payload: dict[str, Any]) -> dict[str, Any]:
    """Round-trip through JSON so UUIDs/datetimes are stored as strings on every backend."""
    return json.loads(json.dumps(payload, default=str))


def record_action(
    db: Session,
    kind: NotificationAuditKind,
    payload: dict[str, Any],
    result: AuditResult = AuditResult.SUCCESS,
) -> NotificationAudit:
    """
    Append one notification audit.

    Called as the last step of an action, after its mutations, inside the
    same transaction; a rollback discards it together with the mutations.
    """
    entry = NotificationAudit(
        kind=kind.value,
        payload=_json_safe(payload),
        result=result.value,
    )
    db.add(entry)
    db.flush()
    return entry


def record_status_changes(
    db: Session,
    *,
    table_name: str,
    record_ids: Iterable[UUID],
    old_status: str,
    new_status: str,
    changed_by: UUID | None,
    extra_new_values: dict[str, Any] | None = None,
) -> int:
    """Append one status_update change-log row per record, in a single INSERT."""
    changed_at = utcnow()
    new_values = _json_safe({"status": new_status, **(extra_new_values or {})})
    rows = [
        {
            "table_name": table_name,
            "record_id": record_id,
            "action_type": ChangeLogAction.STATUS_UPDATE.value,
            "old_values": {"status": old_status},
            "new_values": new_values,
            "changed_by": changed_by,
            "changed_at": changed_at,
        }
        for record_id in record_ids
    ]
    if not rows:
        return 0
    db.execute(insert(SwmsAuditLog), rows)
    return len(rows)


def record_insert(
    db: Session,
    *,
    table_name: str,
    record_id: UUID,
    new_values: dict[str, Any],
    changed_by: UUID | None = None,
) -> SwmsAuditLog:
    """Append one insert change-log row for a newly created record."""
    entry = SwmsAuditLog(
        table_name=table_name,
        record_id=record_id,
        action_type=ChangeLogAction.INSERT.value,
        old_values=None,
        new_values=_json_safe(new_values),
        changed_by=changed_by,
        changed_at=utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry
