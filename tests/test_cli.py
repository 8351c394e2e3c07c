"""
Smoke tests for the command-line interface against an in-memory database.
"""

import sys

import pytest
from loguru import logger
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

import models.database as database
from cli.main import app
from models.entities import AuditLog

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_log_sink():
    """The CLI callback points loguru at the runner's captured stderr."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def cli_db(db_engine, monkeypatch):
    """Point the CLI's engine and session factory at the test database."""
    monkeypatch.setattr(database, "engine", db_engine)
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=db_engine, autoflush=False))
    return db_engine


@pytest.fixture
def demo_loaded(cli_db):
    result = runner.invoke(app, ["demo"])
    assert result.exit_code == 0, result.output
    return cli_db


class TestCLI:
    """Test the main commands end to end."""

    def test_banner(self, cli_db):
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "Quick Start" in result.output

    def test_users_list(self, demo_loaded):
        result = runner.invoke(app, ["users", "list"])

        assert result.exit_code == 0
        assert "ms_rivera" in result.output
        assert "parent_jones" in result.output

    def test_access_granted(self, demo_loaded):
        result = runner.invoke(app, [
            "test", "access",
            "--user", "ms_rivera", "--type", "student", "--id", "10",
            "--sensitivity", "personal", "--action", "view",
            "--location", "office", "--device", "laptop", "--network", "wifi",
            "--at", "2024-09-18T11:00:00",
        ])

        assert result.exit_code == 0, result.output
        assert "ACCESS GRANTED" in result.output

        Session = sessionmaker(bind=demo_loaded)
        with Session() as session:
            assert session.query(AuditLog).count() == 1

    def test_access_denied_on_weekend(self, demo_loaded):
        result = runner.invoke(app, [
            "test", "access",
            "--user", "ms_rivera", "--type", "student", "--id", "10",
            "--sensitivity", "personal", "--action", "view",
            "--location", "office", "--device", "laptop", "--network", "wifi",
            "--at", "2024-09-21T11:00:00",
        ])

        assert result.exit_code == 0, result.output
        assert "ACCESS DENIED" in result.output

    def test_access_for_unknown_user(self, demo_loaded):
        result = runner.invoke(app, [
            "test", "access", "--user", "nobody", "--type", "student", "--id", "10", "--action", "view",
        ])

        assert result.exit_code == 0, result.output
        assert "User 'nobody' not found" in result.output

        Session = sessionmaker(bind=demo_loaded)
        with Session() as session:
            assert session.query(AuditLog).count() == 0

    def test_invalid_sensitivity(self, demo_loaded):
        result = runner.invoke(app, [
            "test", "access", "--user", "ms_rivera", "--type", "student", "--id", "10",
            "--action", "view", "--sensitivity", "secret",
        ])

        assert result.exit_code == 1

    def test_create_policy_and_condition(self, cli_db):
        result = runner.invoke(app, ["policies", "create", "--name", "open-notices", "--type", "notice", "--action", "view"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, [
            "policies", "add-condition", "open-notices",
            "--target", "USER", "--attr", "hierarchy_level", "--op", ">=", "--value", "1",
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["policies", "show", "open-notices"])
        assert "hierarchy_level" in result.output

    def test_role_hierarchy(self, demo_loaded):
        result = runner.invoke(app, ["roles", "hierarchy", "ADMIN"])

        assert result.exit_code == 0
        assert "STAFF" in result.output
