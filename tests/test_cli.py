"""
Tests for Agent Desk CLI module.
"""

import json

import pandas as pd
import pytest
from click.testing import CliRunner

from agentdesk import __version__
from agentdesk.cli import cli
from agentdesk.db import create_db_engine, create_session_factory, init_db
from agentdesk.models import Lead, User, UserRole
from agentdesk.soft_delete import TrashTab
from agentdesk.soft_delete.services import TrashService


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def db_url(tmp_path):
    """URL of a fresh SQLite file for one test."""
    return f"sqlite:///{tmp_path / 'crm.db'}"


@pytest.fixture
def file_session(db_url):
    """Session on the same database file the CLI uses."""
    engine = create_db_engine(db_url)
    init_db(engine)
    session = create_session_factory(engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def trashed(file_session):
    """Two leads in the trash and one agent on the roster."""
    file_session.add_all(
        [
            User(id="agent_1", first_name="Sarah", last_name="Connor",
                 email="sarah@legacyhomes.example", role=UserRole.AGENT),
            Lead(id="lead_1", first_name="Ada", last_name="Byron", source="Zillow"),
            Lead(id="lead_2", first_name="Grace", last_name="Hopper",
                 source="Referral"),
        ]
    )  # fmt: skip
    file_session.commit()
    service = TrashService(file_session)
    service.soft_delete(TrashTab.LEADS, "lead_1")
    service.soft_delete(TrashTab.LEADS, "lead_2")
    return file_session


def _invoke(runner, db_url, *args, **kwargs):
    return runner.invoke(cli, ["--database-url", db_url, *args], **kwargs)


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        """Test CLI help command."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Agent Desk CRM" in result.output
        for command in ("trash", "leads", "dashboard", "doctor"):
            assert command in result.output

    def test_cli_version(self, runner):
        """Test CLI version command."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_cli_no_command(self, runner):
        """Test CLI with no command shows the banner."""
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Agent Desk 360" in result.output


class TestConfigCommands:
    """Test configuration-related commands."""

    def test_config_show(self, runner):
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Agent Desk Configuration" in result.output
        assert "trash_retention_days" in result.output

    def test_config_show_json(self, runner):
        result = runner.invoke(cli, ["config", "show", "--format", "json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["timezone"] == "UTC"

    def test_config_validate(self, runner):
        result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "never emptied" in result.output

    def test_config_validate_bad_file(self, runner, tmp_path):
        path = tmp_path / "agentdesk.json"
        path.write_text(json.dumps({"default_page_size": 33}))

        result = runner.invoke(cli, ["config", "validate", "--file", str(path)])

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output


class TestDatabaseCommands:
    """Test schema creation and demo data."""

    def test_db_init(self, runner, db_url):
        result = _invoke(runner, db_url, "db", "init")
        assert result.exit_code == 0
        assert "Database ready" in result.output

    def test_db_seed(self, runner, db_url):
        result = _invoke(runner, db_url, "db", "seed", "--leads", "5")

        assert result.exit_code == 0
        assert "Demo data" in result.output

    def test_seed_refuses_existing_data(self, runner, db_url):
        _invoke(runner, db_url, "db", "seed", "--leads", "5")

        result = _invoke(runner, db_url, "db", "seed", "--leads", "5")

        assert result.exit_code == 1
        assert "Error seeding database" in result.output


class TestLeadCommands:
    """Test the lead list, export and import."""

    @pytest.fixture
    def seeded(self, runner, db_url):
        result = _invoke(runner, db_url, "db", "seed", "--leads", "6")
        assert result.exit_code == 0

    def test_leads_list_json(self, runner, db_url, seeded):
        result = _invoke(
            runner, db_url, "leads", "list", "--format", "json", "--per-page", "10"
        )

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert len(rows) == 6
        assert set(rows[0]) == {
            "id", "name", "status", "temperature", "source", "budget", "email"
        }  # fmt: skip

    def test_leads_list_as_unknown_user(self, runner, db_url, seeded):
        result = _invoke(runner, db_url, "--as-user", "nobody", "leads", "list")

        assert result.exit_code == 1
        assert "Unknown user" in result.output

    def test_export_csv(self, runner, db_url, seeded, tmp_path):
        output = tmp_path / "leads.csv"

        result = _invoke(runner, db_url, "leads", "export", "--output", str(output))

        assert result.exit_code == 0
        assert "Exported 6 leads" in result.output
        assert len(pd.read_csv(output)) == 6

    def test_import(self, runner, db_url, file_session, tmp_path):
        path = tmp_path / "import.csv"
        path.write_text("Name,Email,Budget\nAda Byron,ada@example.com,400000\n")

        result = _invoke(runner, db_url, "leads", "import", str(path))

        assert result.exit_code == 0
        assert "Successfully imported 1 leads" in result.output
        lead = Lead.query_active(file_session).one()
        assert (lead.first_name, lead.budget) == ("Ada", 400_000)


class TestTrashCommands:
    """Test the consolidated trash from the terminal."""

    def test_empty_trash_listing(self, runner, db_url):
        result = _invoke(runner, db_url, "trash", "list")
        assert result.exit_code == 0
        assert "Trash is empty" in result.output

    def test_trash_list_json(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "list", "--format", "json")

        assert result.exit_code == 0
        items = json.loads(result.stdout)
        assert {item["id"] for item in items} == {"lead_1", "lead_2"}
        assert items[0]["sub_label"] == "Contact Lead"

    def test_trash_list_table(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "list", "--tab", "leads")
        assert result.exit_code == 0
        assert "Ada Byron" in result.output

    def test_restore(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "restore", "lead_1")

        assert result.exit_code == 0
        assert "Restored 1 item(s)" in result.output
        trashed.expire_all()
        assert [lead.id for lead in Lead.query_active(trashed)] == ["lead_1"]

    def test_purge_asks_for_confirmation(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "purge", "lead_1", input="n\n")

        assert result.exit_code == 1
        assert Lead.query_all(trashed).count() == 2

    def test_purge(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "purge", "lead_1", "--yes")

        assert result.exit_code == 0
        assert "Permanently deleted 1 item(s)" in result.output
        assert Lead.query_all(trashed).count() == 1

    def test_empty(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "empty", "--yes")

        assert result.exit_code == 0
        assert "Permanently deleted 2 record(s)" in result.output

    def test_expired_without_retention(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "trash", "empty", "--expired", "--yes")

        assert result.exit_code == 0
        assert "Permanently deleted 0 record(s)" in result.output

    def test_agent_cannot_read_trash(self, runner, db_url, trashed):
        result = _invoke(runner, db_url, "--as-user", "agent_1", "trash", "list")

        assert result.exit_code == 1
        assert "Error reading trash" in result.output


class TestReportCommands:
    def test_dashboard_json(self, runner, db_url):
        _invoke(runner, db_url, "db", "seed", "--leads", "5")

        result = _invoke(runner, db_url, "dashboard", "--format", "json")

        assert result.exit_code == 0
        summary = json.loads(result.stdout)
        assert summary["viewing_agent_id"] == "TEAM"
        assert len(summary["monthly"]) == 12

    def test_dashboard_table(self, runner, db_url):
        _invoke(runner, db_url, "db", "seed", "--leads", "5")

        result = _invoke(runner, db_url, "dashboard", "--agent", "agent_1")

        assert result.exit_code == 0
        assert "Agent Leaderboard" in result.output

    def test_doctor(self, runner, db_url):
        result = _invoke(runner, db_url, "doctor")

        assert result.exit_code == 0
        assert "All systems operational" in result.output
