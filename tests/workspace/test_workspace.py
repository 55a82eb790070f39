"""Tests for the Workspace facade."""

import pytest
import yaml
from tierform.state.store import StateStore
from tierform.utils.errors import ConfigError, LockHeldError, StateError, TierformError
from tierform.workspace import Workspace

DEPLOYMENT = {
    "variables": {"db_password": {"sensitive": True}, "region": {"default": "us-central1"}},
    "resources": [
        {"type": "network", "name": "main", "inputs": {"name": "app-vpc"}},
        {"type": "sql_instance", "name": "db", "inputs": {
            "name": "app-db",
            "region": "${var.region}",
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
    """Workspace directory with a deployment and no user config."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("TIERFORM_PARALLELISM", raising=False)
    workspace_root = tmp_path / "deploy"
    workspace_root.mkdir()
    (workspace_root / "deployment.yaml").write_text(yaml.safe_dump(DEPLOYMENT, sort_keys=False), encoding="utf-8")
    return workspace_root


@pytest.fixture
def workspace(root):
    return Workspace(str(root), variables={"db_password": "hunter2"})


class TestWorkspace:
    """Test the run-level operations."""

    def test_init_writes_catalogue_and_config(self, workspace, root):
        written = workspace.init()

        assert root / ".tierform" / "schemas.json" in written
        assert (root / ".tierform" / "config.yaml").exists()

    def test_validate(self, workspace):
        declarations = workspace.validate()

        assert declarations.addresses == ["network.main", "sql_instance.db", "sql_user.app"]

    def test_apply_records_state_and_outputs(self, workspace):
        plan, result = workspace.apply()

        assert plan.summary()["create"] == 3
        assert result.succeeded
        assert [s.address for s in workspace.state_list()] == ["network.main", "sql_instance.db", "sql_user.app"]
        assert workspace.output("db_connection") == "local-project:us-central1:app-db"
        assert workspace.store.read_lock() is None

    def test_second_apply_has_nothing_to_do(self, workspace, root):
        workspace.apply()

        again = Workspace(str(root), variables={"db_password": "hunter2"})
        plan, result = again.apply()

        assert not plan.has_changes
        assert result is None

    def test_declined_approval_changes_nothing(self, workspace):
        plan, result = workspace.apply(approve=lambda p: False)

        assert plan.has_changes
        assert result is None
        assert workspace.state_list() == []

    def test_destroy_clears_state_and_outputs(self, workspace):
        workspace.apply()

        _, result = workspace.destroy()

        assert result.succeeded
        assert workspace.state_list() == []
        assert workspace.output() == {}

    def test_apply_refuses_held_lock(self, workspace):
        StateStore(str(workspace.store.path)).acquire_lock("apply")

        with pytest.raises(LockHeldError):
            workspace.apply()

    def test_output_not_found(self, workspace):
        with pytest.raises(TierformError, match="not found"):
            workspace.output("missing")

    def test_state_show_and_rm(self, workspace):
        workspace.apply()

        assert workspace.state_show("sql_user.app").inputs["password"] == "hunter2"
        workspace.state_rm("sql_user.app")
        with pytest.raises(StateError):
            workspace.state_show("sql_user.app")
        with pytest.raises(StateError):
            workspace.state_rm("sql_user.app")

    def test_variables_from_project_config(self, root):
        config_dir = root / ".tierform"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text(
            yaml.safe_dump({"variables": {"db_password": "from-config"}, "execution": {"parallelism": 2}}),
            encoding="utf-8",
        )
        workspace = Workspace(str(root))

        assert workspace.variables["db_password"] == "from-config"
        assert workspace.config.execution.parallelism == 2

    def test_parallelism_from_environment(self, root, monkeypatch):
        monkeypatch.setenv("TIERFORM_PARALLELISM", "3")

        assert Workspace(str(root)).config.execution.parallelism == 3

    def test_invalid_config_is_rejected(self, root):
        config_dir = root / ".tierform"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text(yaml.safe_dump({"provider": {"kind": "cloud9"}}), encoding="utf-8")

        with pytest.raises(ConfigError):
            Workspace(str(root))
