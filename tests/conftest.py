"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- User / site / job / contractor / submission factories
- JWT token minting for authenticated tests
- HTTPX AsyncClient with cookie + CSRF headers
- A fake report exporter
"""
import os
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from swms_api.core.deps import COOKIE_NAME, get_db
from swms_api.core.security import create_session_token
from swms_api.db.base import Base
from swms_api.db.enums import SwmsJobStatus, SwmsSubmissionStatus
from swms_api.db.models import Contractor, JobSite, SwmsJob, SwmsSubmission, User
from swms_api.db.session import SessionLocal, engine
from swms_api.main import app
from swms_api.schemas.auth import UserSession
from swms_api.services.report_export_service import (
    ReportExportError,
    ReportHandle,
    get_report_exporter,
)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session over a freshly created schema.

    Actions commit for real, so isolation comes from dropping the schema
    after each test rather than from an outer transaction.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_user(db: Session) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"admin-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test Admin",
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def actor(test_user: User) -> UserSession:
    return UserSession(
        user_id=test_user.id,
        email=test_user.email,
        display_name=test_user.display_name,
    )


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_site(db: Session):
    def _make(name: str = "Riverside Build") -> JobSite:
        site = JobSite(id=uuid.uuid4(), name=name)
        db.add(site)
        db.commit()
        return site

    return _make


@pytest.fixture
def make_job(db: Session, make_site):
    def _make(
        site: JobSite | None = None,
        status: str = SwmsJobStatus.ACTIVE.value,
        name: str = "Roof framing",
    ) -> SwmsJob:
        site = site or make_site()
        job = SwmsJob(
            id=uuid.uuid4(),
            job_site_id=site.id,
            name=name,
            start_date=date(2026, 1, 5),
            status=status,
        )
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def make_contractor(db: Session):
    def _make(name: str = "Acme Scaffolding", email: str | None = "ops@acme.test") -> Contractor:
        contractor = Contractor(id=uuid.uuid4(), name=name, contact_email=email)
        db.add(contractor)
        db.commit()
        return contractor

    return _make


@pytest.fixture
def make_submission(db: Session):
    def _make(
        job: SwmsJob,
        contractor: Contractor,
        status: str = SwmsSubmissionStatus.SUBMITTED.value,
        created_at: datetime | None = None,
        notes: str | None = None,
    ) -> SwmsSubmission:
        created_at = created_at or datetime.now(timezone.utc)
        submission = SwmsSubmission(
            id=uuid.uuid4(),
            swms_job_id=job.id,
            contractor_id=contractor.id,
            status=status,
            created_at=created_at,
            submitted_at=created_at if status != SwmsSubmissionStatus.PENDING.value else None,
            notes=notes,
        )
        db.add(submission)
        db.commit()
        return submission

    return _make


# =============================================================================
# Report exporter
# =============================================================================

@dataclass
class FakeReportExporter:
    """Records export requests; fails when `error` is set."""
    error: Exception | None = None
    calls: list[dict] = field(default_factory=list)

    def export(self, *, job_site_ids, format, include_audit_trail) -> ReportHandle:
        self.calls.append(
            {
                "job_site_ids": list(job_site_ids),
                "format": format,
                "include_audit_trail": include_audit_trail,
            }
        )
        if self.error:
            raise self.error
        return ReportHandle(
            download_url="https://exports.test/report.csv",
            expires_at=(datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
            export_id="exp-123",
        )


@pytest.fixture
def fake_exporter() -> FakeReportExporter:
    return FakeReportExporter()


@pytest.fixture
def failing_exporter() -> FakeReportExporter:
    return FakeReportExporter(error=ReportExportError("Failed to generate compliance report"))


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(test_user: User) -> TestAuth:
    """Create JWT token for test user."""
    token = create_session_token(
        user_id=test_user.id,
        token_version=test_user.token_version,
    )
    return TestAuth(user=test_user, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(
    db: Session, fake_exporter: FakeReportExporter
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient (public endpoints, 401 checks)."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_report_exporter] = lambda: fake_exporter

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
    fake_exporter: FakeReportExporter,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated AsyncClient with JWT cookie and CSRF header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_report_exporter] = lambda: fake_exporter

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
