"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any
from uuid import UUID


def configure_logging(level: str = "INFO") -> None:
    """Install the default log format for API and CLI processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    action: str | None = None,
    job_site_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (IDs only, never emails or message bodies)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if action:
        context["action"] = action
    if job_site_id:
        context["job_site_id"] = str(job_site_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
