"""Tests for the tierform CLI commands."""

import json
import pytest
import yaml
from click.testing import CliRunner
from tierform.cli.main import cli
from tierform.state.store import StateStore

DEPLOYMENT = {
    "variables": {"db_password": {}},
    "resources": [
        {"type": "network", "name": "main", "inputs": {"name": "app-vpc"}},
        {"type": "sql_instance", "name": "db", "inputs": {
            "name": "app-db",
            "region": "us-central1",
            "private_network": "${network.main.self_link}",
        }},
        {"type": "sql_user", "name": "app", "inputs": {
            "name": "app",
            "instance": "${sql_instance.db.name}",
            "password": "${var.db_password}",
        }},
    ],
    "outputs": {"db_connection": "${sql_instance.db.connection_name}"},
}


@pytest.fixture
def root(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("TIERFORM_PARALLELISM", raising=False)
    workspace_root = tmp_path / "deploy"
    workspace_root.mkdir()
    (workspace_root / "deployment.yaml").write_text(yaml.safe_dump(DEPLOYMENT, sort_keys=False), encoding="utf-8")
    return workspace_root


@pytest.fixture
def run(root):
    """Invoke the CLI against the temp workspace."""
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(cli, ["-C", str(root), *args], **kwargs)
    return invoke


VAR = ("--var", "db_password=hunter2")


class TestBasicCommands:
    """Test commands that do not change resources."""

    def test_version(self):
        result = CliRunner().invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "tierform version 0.1.0" in result.output

    def test_init(self, run, root):
        result = run("init")

        assert result.exit_code == 0
        assert (root / ".tierform" / "schemas.json").exists()

    def test_validate(self, run):
        result = run("validate", *VAR)

        assert result.exit_code == 0
        assert "3 resources" in result.output

    def test_validate_reports_fatal_error(self, run, root):
        broken = dict(DEPLOYMENT, resources=DEPLOYMENT["resources"][1:])
        (root / "deployment.yaml").write_text(yaml.safe_dump(broken), encoding="utf-8")

        result = run("validate", *VAR)

        assert result.exit_code == 2
        assert "Error:" in result.output
        assert "network.main" in result.output

    def test_missing_variable_is_fatal(self, run):
        result = run("plan")

        assert result.exit_code == 2
        assert "db_password" in result.output

    def test_malformed_var(self, run):
        result = run("plan", "--var", "db_password")

        assert result.exit_code == 2
        assert "name=value" in result.output

    def test_missing_workspace_directory(self, tmp_path):
        result = CliRunner().invoke(cli, ["-C", str(tmp_path / "nowhere"), "validate"])

        assert result.exit_code == 2
        assert "Directory not found" in result.output


class TestPlanAndApply:
    """Test the plan/apply/destroy cycle and exit codes."""

    def test_plan_with_changes_exits_one(self, run):
        result = run("plan", *VAR)

        assert result.exit_code == 1
        assert "Plan: 3 to create" in result.output
        assert "hunter2" not in result.output

    def test_plan_json(self, run):
        result = run("plan", "--json", *VAR)

        data = json.loads(result.output)
        assert data["summary"]["create"] == 3
        user = next(c for c in data["changes"] if c["address"] == "sql_user.app")
        password = next(a for a in user["changes"] if a["name"] == "password")
        assert password["after"] == "(sensitive value)"

    def test_apply_then_plan_is_clean(self, run):
        applied = run("apply", "--auto-approve", *VAR)
        assert applied.exit_code == 0, applied.output
        assert "3 converged" in applied.output

        planned = run("plan", *VAR)
        assert planned.exit_code == 0
        assert "No changes" in planned.output

    def test_apply_asks_for_confirmation(self, run):
        result = run("apply", *VAR, input="n\n")

        assert result.exit_code == 0
        assert "Apply cancelled" in result.output
        assert run("state", "list").output.strip() == ""

    def test_apply_with_failures_exits_one(self, run, root):
        clash = dict(DEPLOYMENT, resources=DEPLOYMENT["resources"] + [
            {"type": "network", "name": "copy", "inputs": {"name": "app-vpc"}},
        ])
        (root / "deployment.yaml").write_text(yaml.safe_dump(clash), encoding="utf-8")

        result = run("apply", "--auto-approve", *VAR)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_outputs_and_state(self, run):
        run("apply", "--auto-approve", *VAR)

        output = run("output", "db_connection")
        assert output.output.strip() == "local-project:us-central1:app-db"
        as_json = json.loads(run("output", "--json").output)
        assert as_json == {"db_connection": "local-project:us-central1:app-db"}

        listed = run("state", "list").output.split()
        assert listed == ["network.main", "sql_instance.db", "sql_user.app"]
        shown = run("state", "show", "sql_user.app")
        assert shown.exit_code == 0
        assert "hunter2" not in shown.output
        assert "(sensitive value)" in shown.output

    def test_state_rm(self, run):
        run("apply", "--auto-approve", *VAR)

        assert run("state", "rm", "sql_user.app").exit_code == 0
        assert "sql_user.app" not in run("state", "list").output
        assert run("state", "show", "sql_user.app").exit_code == 2

    def test_destroy(self, run):
        run("apply", "--auto-approve", *VAR)

        result = run("destroy", "--auto-approve", *VAR)

        assert result.exit_code == 0
        assert run("state", "list").output.strip() == ""
        assert run("plan", "--destroy", *VAR).exit_code == 0


class TestLocking:
    """Test lock contention and force-unlock."""

    def test_held_lock_is_fatal(self, run, root):
        StateStore(str(root / ".tierform" / "state.json")).acquire_lock("apply")

        result = run("apply", "--auto-approve", *VAR)

        assert result.exit_code == 2
        assert "locked" in result.output

    def test_force_unlock(self, run, root):
        info = StateStore(str(root / ".tierform" / "state.json")).acquire_lock("apply")

        result = run("force-unlock", "--yes", info.id)

        assert result.exit_code == 0
        assert run("plan", *VAR).exit_code == 1

    def test_force_unlock_wrong_id(self, run, root):
        StateStore(str(root / ".tierform" / "state.json")).acquire_lock("apply")

        assert run("force-unlock", "--yes", "nope").exit_code == 2
