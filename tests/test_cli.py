"""Tests for the swms-admin CLI."""

import json

import pytest
from click.testing import CliRunner
from sqlalchemy import func, select

from swms_api.cli import cli
from swms_api.core.security import decode_session_token
from swms_api.db.models import EmailCampaign, User


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_create_user(runner, db):
    result = runner.invoke(
        cli, ["create-user", "--email", "Site.Admin@Example.com", "--name", "Site Admin"]
    )

    assert result.exit_code == 0, result.output
    assert "Created user: site.admin@example.com" in result.output
    user = db.scalar(select(User).where(User.email == "site.admin@example.com"))
    assert user.display_name == "Site Admin"


def test_create_user_duplicate_fails(runner, test_user):
    result = runner.invoke(
        cli, ["create-user", "--email", test_user.email, "--name", "Again"]
    )

    assert result.exit_code == 1


def test_issue_token_matches_user(runner, test_user):
    result = runner.invoke(cli, ["issue-token", "--email", test_user.email])

    assert result.exit_code == 0, result.output
    payload = decode_session_token(result.stdout.strip())
    assert payload["sub"] == str(test_user.id)
    assert payload["token_version"] == test_user.token_version


def test_revoke_sessions_bumps_version(runner, db, test_user):
    before = test_user.token_version

    result = runner.invoke(cli, ["revoke-sessions", "--email", test_user.email])

    assert result.exit_code == 0, result.output
    db.refresh(test_user)
    assert test_user.token_version == before + 1


def test_run_action(runner, db, test_user, make_job):
    make_job()

    result = runner.invoke(
        cli, ["run-action", "--email", test_user.email, "--action", "weekly-campaign"]
    )

    assert result.exit_code == 0, result.output
    body = json.loads(result.stdout)
    assert body["success"] is True
    assert body["data"] == {"campaigns_created": 1, "jobs_targeted": 1}
    assert db.scalar(select(func.count(EmailCampaign.id))) == 1


def test_run_action_validation_failure_exits_1(runner, test_user):
    result = runner.invoke(
        cli,
        [
            "run-action",
            "--email", test_user.email,
            "--action", "bulk-approve",
            "--params", '{"approvalCriteria": "  "}',
        ],
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"] == "Approval criteria is required for bulk approval"


def test_run_action_rejects_bad_params_json(runner, test_user):
    result = runner.invoke(
        cli,
        ["run-action", "--email", test_user.email, "--action", "bulk-approve", "--params", "{"],
    )

    assert result.exit_code == 1


def test_compliance_check(runner, make_job):
    make_job()

    result = runner.invoke(cli, ["compliance-check"])

    assert result.exit_code == 0, result.output
    assert "Compliance rate: 0%" in result.output
    assert "activeJobs: 1" in result.output
