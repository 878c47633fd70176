"""Client for the Work Safe compliance export function.

The export itself (querying, rendering, storage of the file) happens in an
external function; this module only requests it and returns its download
handle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

import httpx

from swms_api.core.config import settings

logger = logging.getLogger(__name__)


class ReportExportError(Exception):
    """The export function failed or returned an unusable response."""


class ReportExportTimeout(ReportExportError):
    """The export function did not answer in time."""


@dataclass(frozen=True)
class ReportHandle:
    download_url: str
    expires_at: str | None
    export_id: str | None


class ReportExporter(Protocol):
    def export(
        self,
        *,
        job_site_ids: list[UUID],
        format: str,
        include_audit_trail: bool,
    ) -> ReportHandle: ...


class HttpReportExporter:
    """
    POSTs an export request to REPORT_EXPORT_URL with a bearer key.

    A custom transport can be passed for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url if url is not None else settings.REPORT_EXPORT_URL
        self.api_key = api_key if api_key is not None else settings.REPORT_EXPORT_API_KEY
        self.timeout = timeout if timeout is not None else settings.REPORT_EXPORT_TIMEOUT_SECONDS
        self.transport = transport

    def export(
        self,
        *,
        job_site_ids: list[UUID],
        format: str,
        include_audit_trail: bool,
    ) -> ReportHandle:
        if not self.url or not self.api_key:
            raise ReportExportError("Report export is not configured")

        payload = {
            "job_site_ids": [str(site_id) for site_id in job_site_ids],
            "format": format,
            "include_audit_trail": include_audit_trail,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            logger.warning("Report export timed out after %ss", self.timeout)
            raise ReportExportTimeout("Report export timed out") from exc
        except httpx.RequestError as exc:
            logger.warning("Report export request failed: %s", exc.__class__.__name__)
            raise ReportExportError("Failed to generate compliance report") from exc

        if not 200 <= response.status_code < 300:
            logger.warning("Report export returned %s", response.status_code)
            raise ReportExportError("Failed to generate compliance report")

        try:
            body = response.json()
        except ValueError as exc:
            raise ReportExportError("Report export returned invalid JSON") from exc

        download_url = body.get("download_url") if isinstance(body, dict) else None
        if not download_url:
            raise ReportExportError("Report export returned no download URL")

        return ReportHandle(
            download_url=download_url,
            expires_at=_as_text(body.get("expires_at")),
            export_id=_as_text(body.get("export_id")),
        )


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def get_report_exporter() -> ReportExporter:
    """FastAPI dependency; overridden in tests."""
    return HttpReportExporter()
