"""Single entry point for SWMS campaign commands.

Parses the action tag into a typed command, routes it to its handler, owns
the transaction and the per-action deadline, and turns every outcome into
a response envelope. Nothing raised by a handler escapes this module.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swms_api.core.config import settings
from swms_api.core.deadlines import DeadlineExceeded, action_deadline
from swms_api.core.structured_logging import build_log_context
from swms_api.db.enums import AuditResult, NotificationAuditKind
from swms_api.db.models.common import utcnow
from swms_api.schemas.auth import UserSession
from swms_api.schemas.swms_actions import (
    COMMAND_MODELS,
    CampaignAction,
    CampaignActionResponse,
    CampaignCommand,
)
from swms_api.services import notification_audit_service, swms_campaign_service
from swms_api.services.report_export_service import ReportExporter
from swms_api.services.swms_action_errors import (
    ActionTimeout,
    ActionValidationError,
    SwmsActionError,
    UnauthorizedError,
    UnknownActionError,
)
from swms_api.services.swms_campaign_service import ActionContext, ActionResult

logger = logging.getLogger(__name__)

Handler = Callable[[Session, ActionContext, Any], ActionResult]


# =============================================================================
# Registry
# =============================================================================

HANDLERS: dict[CampaignAction, Handler] = {
    CampaignAction.SEND_REMINDER: swms_campaign_service.send_reminder,
    CampaignAction.BULK_APPROVE: swms_campaign_service.bulk_approve,
    CampaignAction.COMPLIANCE_CHECK: swms_campaign_service.compliance_check,
    CampaignAction.URGENT_NOTIFICATION: swms_campaign_service.urgent_notification,
    CampaignAction.WEEKLY_CAMPAIGN: swms_campaign_service.weekly_campaign,
    CampaignAction.GENERATE_REPORT: swms_campaign_service.generate_report,
    CampaignAction.BROADCAST_UPDATE: swms_campaign_service.broadcast_update,
    CampaignAction.PAUSE_CAMPAIGNS: swms_campaign_service.pause_campaigns,
}

# Audit kind written when an action fails after touching the store
AUDIT_KINDS: dict[CampaignAction, NotificationAuditKind] = {
    CampaignAction.SEND_REMINDER: NotificationAuditKind.REMINDER_MANUAL,
    CampaignAction.BULK_APPROVE: NotificationAuditKind.BULK_APPROVAL,
    CampaignAction.COMPLIANCE_CHECK: NotificationAuditKind.COMPLIANCE_CHECK,
    CampaignAction.URGENT_NOTIFICATION: NotificationAuditKind.URGENT_NOTIFICATION,
    CampaignAction.WEEKLY_CAMPAIGN: NotificationAuditKind.WEEKLY_CAMPAIGN,
    CampaignAction.GENERATE_REPORT: NotificationAuditKind.COMPLIANCE_REPORT,
    CampaignAction.BROADCAST_UPDATE: NotificationAuditKind.BROADCAST_UPDATE,
    CampaignAction.PAUSE_CAMPAIGNS: NotificationAuditKind.CAMPAIGN_CONTROL,
}

for _registry_name, _registry in (
    ("HANDLERS", HANDLERS),
    ("AUDIT_KINDS", AUDIT_KINDS),
    ("COMMAND_MODELS", COMMAND_MODELS),
):
    _missing = set(CampaignAction) - set(_registry)
    if _missing:
        raise RuntimeError(
            f"{_registry_name} has no entry for: {', '.join(sorted(a.value for a in _missing))}"
        )


# =============================================================================
# Parsing
# =============================================================================

def _format_validation_error(exc: ValidationError) -> str:
    """First pydantic error as a single readable sentence."""
    error = exc.errors()[0]
    if error["type"] == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    location = ".".join(str(part) for part in error["loc"] if part != "parameters")
    if location:
        return f"Invalid {location}: {error['msg']}"
    return error["msg"]


def parse_command(body: Any) -> CampaignCommand:
    """
    Turn a raw request body into a typed command.

    Raises:
        ActionValidationError: missing action or malformed parameters
        UnknownActionError: the action tag names no known action
    """
    if not isinstance(body, dict):
        raise ActionValidationError("Request body must be a JSON object")

    action = body.get("action")
    if not action:
        raise ActionValidationError("Missing action parameter")
    if not isinstance(action, str) or not CampaignAction.has_value(action):
        raise UnknownActionError(f"Unknown action: {action}")

    fields = {key: value for key, value in body.items() if key != "action"}
    if fields.get("parameters") is None:
        fields.pop("parameters", None)

    model = COMMAND_MODELS[CampaignAction(action)]
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        raise ActionValidationError(_format_validation_error(exc)) from exc


# =============================================================================
# Dispatch
# =============================================================================

def _failure(exc: SwmsActionError) -> tuple[int, CampaignActionResponse]:
    return exc.status_code, CampaignActionResponse(success=False, error=exc.message)


def _record_failure(
    db: Session,
    command: CampaignCommand,
    ctx: ActionContext,
    error: str,
    error_type: str,
) -> None:
    """Write a failure audit in its own transaction, after the action was rolled back."""
    payload = {
        "action": command.action.value,
        "triggered_by": swms_campaign_service.TRIGGERED_BY,
        "actor_id": ctx.actor.user_id,
        "job_site_id": command.job_site_id,
        "error": error,
        "error_type": error_type,
    }
    try:
        notification_audit_service.record_action(
            db, AUDIT_KINDS[command.action], payload, result=AuditResult.FAILURE
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record failure audit for %s", command.action.value)


def dispatch(
    db: Session,
    actor: UserSession | None,
    body: Any,
    *,
    exporter: ReportExporter | None = None,
    now: datetime | None = None,
    timeout: float | None = None,
    request_id: str | None = None,
) -> tuple[int, CampaignActionResponse]:
    """
    Run one campaign command and return (HTTP status, envelope).

    Authentication and validation failures return before the store is
    touched. The handler's work is committed once; any error rolls all of
    it back.
    """
    if actor is None:
        return _failure(UnauthorizedError())

    try:
        command = parse_command(body)
    except SwmsActionError as exc:
        logger.info(
            "Rejected campaign command: %s",
            exc.message,
            extra=build_log_context(user_id=actor.user_id, request_id=request_id),
        )
        return _failure(exc)

    log_context = build_log_context(
        user_id=actor.user_id,
        action=command.action.value,
        job_site_id=command.job_site_id,
        request_id=request_id,
    )
    ctx = ActionContext(actor=actor, now=now or utcnow(), exporter=exporter)
    handler = HANDLERS[command.action]
    deadline = settings.ACTION_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        with action_deadline(db, deadline):
            result = handler(db, ctx, command)
        db.commit()
    except SwmsActionError as exc:
        db.rollback()
        logger.warning(
            "Campaign action %s failed: %s", command.action.value, exc.message, extra=log_context
        )
        if exc.records_failure:
            _record_failure(db, command, ctx, exc.message, type(exc).__name__)
        return _failure(exc)
    except DeadlineExceeded as exc:
        db.rollback()
        logger.warning("Campaign action %s timed out", command.action.value, extra=log_context)
        timeout_error = ActionTimeout(str(exc))
        _record_failure(db, command, ctx, timeout_error.message, type(timeout_error).__name__)
        return _failure(timeout_error)
    except Exception as exc:
        db.rollback()
        logger.exception("Campaign action %s crashed", command.action.value, extra=log_context)
        message = str(exc) or "Internal server error"
        _record_failure(db, command, ctx, message, type(exc).__name__)
        return 500, CampaignActionResponse(success=False, error=message)

    logger.info("Campaign action %s succeeded", command.action.value, extra=log_context)
    return 200, CampaignActionResponse(success=True, message=result.message, data=result.data)
