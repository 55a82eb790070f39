"""Tests for the planner."""

from pathlib import Path
import pytest
from tierform.graph.dependency_graph import build_graph
from tierform.ingest.declaration_loader import load_declarations
from tierform.ingest.models import DeclarationSet
from tierform.planning import ActionType, OperationKind, Planner
from tierform.planning.models import UNKNOWN_DISPLAY
from tierform.utils.errors import SchemaViolationError

EXAMPLE = Path(__file__).resolve().parents[2] / "examples" / "three_tier" / "deployment.yaml"


def with_inputs(declarations, address, **changes):
    resources = []
    for resource in declarations.resources:
        if resource.address == address:
            resource = resource.model_copy(update={"inputs": {**resource.inputs, **changes}})
        resources.append(resource)
    return DeclarationSet(resources=resources)


def without(declarations, address):
    return DeclarationSet(resources=[r for r in declarations.resources if r.address != address])


@pytest.fixture
def planner(registry):
    return Planner(registry)


@pytest.fixture
def make_plan(planner, registry, store):
    def run(declarations, destroy=False):
        return planner.plan(build_graph(declarations, registry), store.load(), destroy=destroy)
    return run


@pytest.fixture
def converge(make_plan, make_executor):
    """Plan and apply; fails the test if anything did not converge."""
    def run(declarations, destroy=False):
        plan = make_plan(declarations, destroy=destroy)
        result = make_executor().apply(plan, declarations)
        assert result.succeeded, [o.reason for o in result.operations if o.reason]
        return plan
    return run


class TestCreatePlans:
    """Test planning from empty state."""

    def test_network_first_then_database_and_cache(self, make_plan, network_db_cache):
        plan = make_plan(network_db_cache)

        assert plan.actions() == [
            ("network.main", ActionType.CREATE),
            ("sql_instance.db", ActionType.CREATE),
            ("cache_instance.cache", ActionType.CREATE),
        ]
        first, *rest = plan.operations
        assert first.key == "create:network.main"
        assert {op.key for op in rest} == {"create:sql_instance.db", "create:cache_instance.cache"}
        assert all(op.after == ["create:network.main"] for op in rest)

    def test_create_changes_show_unknown_values(self, make_plan, network_db_cache):
        plan = make_plan(network_db_cache)

        db = plan.change_for("sql_instance.db")
        private_network = next(c for c in db.changes if c.name == "private_network")
        assert private_network.after == UNKNOWN_DISPLAY
        assert private_network.forces_replacement is False

    def test_dependency_order_respected_for_example(self, make_plan, registry):
        declarations = load_declarations(str(EXAMPLE), {"db_password": "pw"})
        graph = build_graph(declarations, registry)
        plan = make_plan(declarations)

        position = {key: idx for idx, key in enumerate(plan.operation_order())}
        for dependent, dependency in graph.graph.edges:
            assert position[f"create:{dependency}"] < position[f"create:{dependent}"]

    def test_invalid_known_inputs_fail_planning(self, make_plan, declare):
        declarations = DeclarationSet(resources=[declare("network", "main", {"name": "vpc", "routing_mode": "WORLD"})])

        with pytest.raises(SchemaViolationError, match="routing_mode"):
            make_plan(declarations)

    def test_summary(self, make_plan, network_db_cache):
        plan = make_plan(network_db_cache)

        assert plan.summary() == {"create": 3, "update": 0, "replace": 0, "destroy": 0, "no-op": 0}
        assert plan.has_changes


class TestPlansAgainstState:
    """Test diffing against converged state."""

    def test_unchanged_declarations_plan_all_no_op(self, converge, make_plan, network_db_cache):
        converge(network_db_cache)

        plan = make_plan(network_db_cache)
        assert all(action == ActionType.NO_OP for _, action in plan.actions())
        assert plan.operations == []
        assert not plan.has_changes

    def test_mutable_attribute_change_is_update(self, converge, make_plan, network_db_cache):
        converge(network_db_cache)

        plan = make_plan(with_inputs(network_db_cache, "network.main", routing_mode="GLOBAL"))

        change = plan.change_for("network.main")
        assert change.action == ActionType.UPDATE
        assert [(c.name, c.before, c.after) for c in change.changes] == [("routing_mode", "REGIONAL", "GLOBAL")]
        assert plan.change_for("sql_instance.db").action == ActionType.NO_OP
        assert plan.operation_order() == ["update:network.main"]

    def test_forced_replacement_attribute_change_is_replace(self, converge, make_plan, network_db_cache):
        converge(network_db_cache)

        plan = make_plan(with_inputs(network_db_cache, "network.main", name="new-vpc"))

        network = plan.change_for("network.main")
        assert network.action == ActionType.REPLACE
        assert network.replace_attributes == ["name"]
        # Dependents see an unknown network link, which forces their replacement too.
        assert plan.change_for("sql_instance.db").action == ActionType.REPLACE
        assert plan.operation_order() == [
            "delete:sql_instance.db",
            "delete:cache_instance.cache",
            "delete:network.main",
            "create:network.main",
            "create:sql_instance.db",
            "create:cache_instance.cache",
        ]
        create_network = plan.operations[3]
        assert create_network.after == ["delete:network.main"]

    def test_replacement_converges(self, converge, make_plan, store, network_db_cache):
        converge(network_db_cache)
        old_id = store.get("network.main").identifier
        changed = with_inputs(network_db_cache, "network.main", name="new-vpc")

        converge(changed)

        assert store.get("network.main").identifier != old_id
        assert store.get("network.main").inputs["name"] == "new-vpc"
        assert not make_plan(changed).has_changes

    def test_sensitive_change_is_flagged(self, converge, make_plan, declare):
        declarations = DeclarationSet(resources=[
            declare("sql_user", "app", {"name": "app", "instance": "db", "password": "one"}),
        ])
        converge(declarations)

        plan = make_plan(with_inputs(declarations, "sql_user.app", password="two"))

        change = plan.change_for("sql_user.app")
        assert change.action == ActionType.UPDATE
        assert change.changes[0].sensitive is True

    def test_replace_also_replaces_resources_that_reference_it(self, converge, make_plan):
        declarations = load_declarations(str(EXAMPLE), {"db_password": "pw"})
        converge(declarations)

        plan = make_plan(with_inputs(declarations, "service_account.backend", account_id="backend-sa2"))

        assert plan.change_for("service_account.backend").action == ActionType.REPLACE
        backend = plan.change_for("container_service.backend")
        assert backend.action == ActionType.REPLACE
        assert "service_account.backend" in backend.reason
        order = plan.operation_order()
        assert order.index("delete:container_service.backend") < order.index("delete:service_account.backend")
        delete_account = next(op for op in plan.operations if op.key == "delete:service_account.backend")
        assert "delete:container_service.backend" in delete_account.after
        assert plan.change_for("service_account.frontend").action == ActionType.NO_OP
        assert plan.change_for("sql_instance.main").action == ActionType.NO_OP

    def test_renamed_service_account_converges(self, converge, make_plan, store):
        declarations = load_declarations(str(EXAMPLE), {"db_password": "pw"})
        converge(declarations)
        renamed = with_inputs(declarations, "service_account.backend", account_id="backend-sa2")

        converge(renamed)

        account = store.get("service_account.backend")
        assert account.inputs["account_id"] == "backend-sa2"
        assert store.get("container_service.backend").inputs["service_account"] == account.outputs["email"]
        assert not make_plan(renamed).has_changes

    def test_removed_resource_is_the_only_destroy(self, converge, make_plan, network_db_cache):
        converge(network_db_cache)

        plan = make_plan(without(network_db_cache, "cache_instance.cache"))

        assert plan.summary()["destroy"] == 1
        assert plan.change_for("cache_instance.cache").action == ActionType.DESTROY
        assert plan.change_for("network.main").action == ActionType.NO_OP
        assert plan.change_for("sql_instance.db").action == ActionType.NO_OP
        assert plan.operation_order() == ["delete:cache_instance.cache"]

    def test_destroy_removes_dependents_first(self, converge, make_plan, network_db_cache):
        converge(network_db_cache)

        plan = make_plan(network_db_cache, destroy=True)

        assert plan.destroy
        assert all(op.kind == OperationKind.DELETE for op in plan.operations)
        last = plan.operations[-1]
        assert last.key == "delete:network.main"
        assert set(last.after) == {"delete:sql_instance.db", "delete:cache_instance.cache"}

    def test_destroy_without_state_is_empty(self, make_plan, network_db_cache):
        plan = make_plan(network_db_cache, destroy=True)

        assert plan.changes == []
        assert not plan.has_changes
