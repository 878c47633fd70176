"""CLI tools for SWMS compliance administration."""

import json
from datetime import timedelta
from uuid import UUID

import click
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from swms_api.core.config import settings
from swms_api.core.security import create_session_token
from swms_api.core.structured_logging import configure_logging
from swms_api.db.models import User
from swms_api.db.models.common import utcnow
from swms_api.db.session import SessionLocal
from swms_api.schemas.auth import UserSession
from swms_api.services import swms_action_dispatcher
from swms_api.services.report_export_service import HttpReportExporter
from swms_api.services.swms_campaign_service import load_compliance_snapshot


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    raise click.exceptions.Exit(1)


def _find_user(db, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


@click.group()
def cli():
    """SWMS compliance CLI tools."""
    configure_logging(settings.LOG_LEVEL)


@cli.command()
@click.option("--email", required=True, help="Admin email address")
@click.option("--name", "display_name", required=True, help="Display name")
def create_user(email: str, display_name: str):
    """
    Create an admin user for the compliance console.

    Example:
        swms-admin create-user --email "admin@example.com" --name "Site Admin"
    """
    db = SessionLocal()
    try:
        if _find_user(db, email):
            _fail(f"User already exists: {email}")

        user = User(email=email.lower().strip(), display_name=display_name)
        db.add(user)
        db.commit()

        click.echo(f"✓ Created user: {user.email}")
        click.echo(f"  ID: {user.id}")
    except SQLAlchemyError as e:
        db.rollback()
        _fail(f"Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User to issue a session token for")
def issue_token(email: str):
    """
    Print a signed session token (for scripts calling the API with a bearer header).

    Example:
        swms-admin issue-token --email "admin@example.com"
    """
    db = SessionLocal()
    try:
        user = _find_user(db, email)
        if not user or not user.is_active:
            _fail(f"Active user not found: {email}")
        click.echo(create_session_token(user.id, user.token_version))
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        swms-admin revoke-sessions --email "admin@example.com"
    """
    db = SessionLocal()
    try:
        user = _find_user(db, email)
        if not user:
            _fail(f"User not found: {email}")

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")
    except SQLAlchemyError as e:
        db.rollback()
        _fail(f"Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Admin running the action")
@click.option("--action", "action", required=True, help="Campaign action, e.g. send-reminder")
@click.option("--job-site-id", default=None, help="Optional job site scope")
@click.option("--swms-job-id", default=None, help="Optional SWMS job")
@click.option("--params", "params_json", default=None, help="Action parameters as JSON")
def run_action(
    email: str,
    action: str,
    job_site_id: str | None,
    swms_job_id: str | None,
    params_json: str | None,
):
    """
    Run a campaign action through the same dispatcher as the API.

    Example:
        swms-admin run-action --email "admin@example.com" --action bulk-approve \\
            --params '{"approvalCriteria": "Reviewed on site"}'
    """
    try:
        parameters = json.loads(params_json) if params_json else None
    except json.JSONDecodeError as e:
        _fail(f"--params is not valid JSON: {e}")

    body = {"action": action, "parameters": parameters}
    if job_site_id:
        body["job_site_id"] = job_site_id
    if swms_job_id:
        body["swms_job_id"] = swms_job_id

    db = SessionLocal()
    try:
        user = _find_user(db, email)
        if not user or not user.is_active:
            _fail(f"Active user not found: {email}")
        actor = UserSession(user_id=user.id, email=user.email, display_name=user.display_name)

        status_code, response = swms_action_dispatcher.dispatch(
            db, actor, body, exporter=HttpReportExporter()
        )
        click.echo(response.model_dump_json(exclude_none=True, indent=2))
        if not response.success:
            raise click.exceptions.Exit(1 if status_code < 500 else 2)
    finally:
        db.close()


@cli.command()
@click.option("--job-site-id", default=None, help="Optional job site scope")
def compliance_check(job_site_id: str | None):
    """
    Print the compliance counts without writing an audit record.

    Example:
        swms-admin compliance-check --job-site-id <uuid>
    """
    try:
        site_id = UUID(job_site_id) if job_site_id else None
    except ValueError:
        _fail(f"Invalid job site id: {job_site_id}")

    db = SessionLocal()
    try:
        snapshot = load_compliance_snapshot(
            db,
            utcnow(),
            timedelta(hours=settings.OVERDUE_THRESHOLD_HOURS),
            job_site_id=site_id,
        )
    finally:
        db.close()

    click.echo(f"Compliance rate: {snapshot.compliance_rate}%")
    for key, value in snapshot.as_metrics().items():
        click.echo(f"  {key}: {value}")


if __name__ == "__main__":
    cli()
