"""Tests for wave-based plan execution."""

import threading
import time
import pytest
from tierform.execution import CancellationToken, ResourceStatus, refresh
from tierform.graph.dependency_graph import build_graph
from tierform.ingest.models import DeclarationSet, Reference
from tierform.planning import Planner
from tierform.state.store import StateStore
from tierform.utils.errors import PermanentProviderError, TransientProviderError


class Crash(BaseException):
    """Simulates the process dying mid-apply."""


@pytest.fixture
def make_plan(registry, store):
    def run(declarations, destroy=False):
        return Planner(registry).plan(build_graph(declarations, registry), store.load(), destroy=destroy)
    return run


@pytest.fixture
def two_subtrees(declare):
    """net-a <- db-a and net-b <- cache-b; the subtrees share nothing."""
    return DeclarationSet(resources=[
        declare("network", "a", {"name": "net-a"}),
        declare("sql_instance", "a", {
            "name": "db-a",
            "region": "us-central1",
            "private_network": Reference(target="network.a", attribute="self_link"),
        }),
        declare("network", "b", {"name": "net-b"}),
        declare("cache_instance", "b", {
            "name": "cache-b",
            "region": "us-central1",
            "authorized_network": Reference(target="network.b", attribute="id"),
        }),
    ])


class TestExecutor:
    """Test convergence and state commits."""

    def test_apply_converges_and_commits(self, make_plan, make_executor, store, network_db_cache):
        result = make_executor().apply(make_plan(network_db_cache), network_db_cache)

        assert result.succeeded
        assert result.converged == ["cache_instance.cache", "network.main", "sql_instance.db"]
        assert result.waves == 2
        db = store.get("sql_instance.db")
        assert db.inputs["private_network"] == store.get("network.main").outputs["self_link"]
        assert db.dependencies == ["network.main"]
        assert db.outputs["private_ip_address"]

    def test_waves_run_dependencies_first(self, make_plan, make_executor, provider, network_db_cache):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)

        creates = [label for method, label in provider.calls if method == "create"]
        assert creates[0] == "app-vpc"
        assert set(creates[1:]) == {"app-db", "app-cache"}

    def test_outcomes_record_wave_and_attempts(self, make_plan, make_executor, network_db_cache):
        result = make_executor().apply(make_plan(network_db_cache), network_db_cache)

        by_key = {o.key: o for o in result.operations}
        assert by_key["create:network.main"].wave == 1
        assert by_key["create:sql_instance.db"].wave == 2
        assert by_key["create:network.main"].attempts == 1

    def test_progress_callback(self, make_plan, make_executor, network_db_cache):
        events = []
        executor = make_executor(progress=lambda event, op, outcome: events.append((event, op.key)))

        executor.apply(make_plan(network_db_cache), network_db_cache)

        assert events[0] == ("start", "create:network.main")
        assert events[1] == ("finish", "create:network.main")
        assert len(events) == 6


class TestFailureIsolation:
    """A failure only affects its own dependents."""

    def test_independent_subtree_still_converges(self, make_plan, make_executor, provider, store, two_subtrees):
        provider.fail("create", "net-a", PermanentProviderError("quota exceeded"))

        result = make_executor().apply(make_plan(two_subtrees), two_subtrees)

        assert result.status_of("network.a") == ResourceStatus.FAILED
        assert result.status_of("sql_instance.a") == ResourceStatus.SKIPPED
        assert result.status_of("network.b") == ResourceStatus.CONVERGED
        assert result.status_of("cache_instance.b") == ResourceStatus.CONVERGED
        assert not result.succeeded
        assert [s.address for s in store.load()] == ["cache_instance.b", "network.b"]

    def test_failure_reason_carries_action_address_and_message(self, make_plan, make_executor, provider, two_subtrees):
        provider.fail("create", "net-a", PermanentProviderError("quota exceeded"))

        result = make_executor().apply(make_plan(two_subtrees), two_subtrees)

        reason = result.resources()["network.a"].reason
        assert reason == "create network.a failed: quota exceeded"
        assert "network.a" in result.resources()["sql_instance.a"].reason

    def test_failed_destroy_keeps_state(self, make_plan, make_executor, provider, store, network_db_cache):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)
        provider.fail("delete", "app-db", PermanentProviderError("deletion protection"))

        result = make_executor().apply(make_plan(network_db_cache, destroy=True), network_db_cache)

        assert result.status_of("sql_instance.db") == ResourceStatus.FAILED
        assert result.status_of("cache_instance.cache") == ResourceStatus.CONVERGED
        assert result.status_of("network.main") == ResourceStatus.SKIPPED
        assert [s.address for s in store.load()] == ["network.main", "sql_instance.db"]

    def test_crash_keeps_converged_sibling_and_nothing_else(self, make_plan, make_executor, provider, store, declare):
        declarations = DeclarationSet(resources=[
            declare("network", "x", {"name": "net-x"}),
            declare("network", "y", {"name": "net-y"}),
        ])
        provider.fail("create", "net-y", Crash())

        with pytest.raises(Crash):
            make_executor(parallelism=1).apply(make_plan(declarations), declarations)

        reloaded = StateStore(str(store.path))
        assert [s.address for s in reloaded.load()] == ["network.x"]
        assert reloaded.get("network.x").outputs["name"] == "net-x"


class TestRetries:
    """Transient errors are retried, permanent ones are not."""

    def test_transient_error_is_retried(self, make_plan, make_executor, provider, network_db_cache):
        provider.fail("create", "app-vpc", TransientProviderError("rate limited"), times=2)

        result = make_executor().apply(make_plan(network_db_cache), network_db_cache)

        assert result.succeeded
        outcome = next(o for o in result.operations if o.key == "create:network.main")
        assert outcome.attempts == 3
        assert len(provider.calls_for("create", "app-vpc")) == 3

    def test_retries_are_bounded(self, make_plan, make_executor, provider, network_db_cache):
        provider.fail("create", "app-vpc", TransientProviderError("service unavailable"))

        result = make_executor().apply(make_plan(network_db_cache), network_db_cache)

        assert result.status_of("network.main") == ResourceStatus.FAILED
        assert len(provider.calls_for("create", "app-vpc")) == 3

    def test_permanent_error_is_not_retried(self, make_plan, make_executor, provider, network_db_cache):
        provider.fail("create", "app-vpc", PermanentProviderError("invalid name"))

        make_executor().apply(make_plan(network_db_cache), network_db_cache)

        assert len(provider.calls_for("create", "app-vpc")) == 1


class TestTimeoutsAndCancellation:
    """Test per-operation timeouts and cancellation."""

    def test_timed_out_operation_fails_and_result_is_discarded(
        self, make_plan, make_executor, provider, store, network_db_cache
    ):
        provider.stall("create", "app-vpc", 1.0)

        started = time.monotonic()
        result = make_executor(resource_timeout=0.2).apply(make_plan(network_db_cache), network_db_cache)

        assert time.monotonic() - started < 1.0
        assert result.status_of("network.main") == ResourceStatus.FAILED
        assert "timed out" in result.resources()["network.main"].reason
        assert result.status_of("sql_instance.db") == ResourceStatus.SKIPPED
        assert store.get("network.main") is None

    def test_cancel_before_start(self, make_plan, make_executor, provider, network_db_cache):
        token = CancellationToken()
        token.cancel()

        result = make_executor().apply(make_plan(network_db_cache), network_db_cache, cancel=token)

        assert result.cancelled
        assert result.skipped == ["cache_instance.cache", "network.main", "sql_instance.db"]
        assert provider.calls == []

    def test_cancel_between_waves(self, make_plan, make_executor, store, network_db_cache):
        token = CancellationToken()

        def progress(event, op, outcome):
            if event == "finish":
                token.cancel()

        result = make_executor(progress=progress).apply(make_plan(network_db_cache), network_db_cache, cancel=token)

        assert result.cancelled
        assert result.converged == ["network.main"]
        assert result.skipped == ["cache_instance.cache", "sql_instance.db"]
        assert [s.address for s in store.load()] == ["network.main"]

    def test_cancel_mid_wave_lets_running_operations_finish(
        self, make_plan, make_executor, provider, store, two_subtrees
    ):
        provider.stall("create", "net-a", 0.3)
        provider.stall("create", "net-b", 0.3)
        token = CancellationToken()

        def cancel_once_both_are_running():
            deadline = time.monotonic() + 5
            while len(provider.calls) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            token.cancel()

        canceller = threading.Thread(target=cancel_once_both_are_running)
        canceller.start()
        result = make_executor().apply(make_plan(two_subtrees), two_subtrees, cancel=token)
        canceller.join()

        assert result.cancelled
        assert result.converged == ["network.a", "network.b"]
        assert result.skipped == ["cache_instance.b", "sql_instance.a"]
        assert [s.address for s in store.load()] == ["network.a", "network.b"]
        assert sorted(provider.calls) == [("create", "net-a"), ("create", "net-b")]


class TestDeletes:
    """Test destroy edge cases."""

    def test_already_deleted_resource_counts_as_converged(
        self, make_plan, make_executor, provider, store, network_db_cache
    ):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)
        cache_id = store.get("cache_instance.cache").identifier
        del provider._objects[cache_id]

        result = make_executor().apply(make_plan(network_db_cache, destroy=True), network_db_cache)

        assert result.succeeded
        assert store.load() == []

    def test_dependency_violation_gives_remediation(self, make_plan, make_executor, store, network_db_cache):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)
        # Forget the database; it still uses the network.
        store.remove("sql_instance.db")

        result = make_executor().apply(make_plan(network_db_cache, destroy=True), network_db_cache)

        reason = result.resources()["network.main"].reason
        assert result.status_of("network.main") == ResourceStatus.FAILED
        assert "still in use" in reason
        assert "remove or detach it manually" in reason
        assert store.get("network.main") is not None


class TestRefresh:
    """Test reconciling state with the provider."""

    def test_refresh_drops_resources_deleted_out_of_band(
        self, make_plan, make_executor, provider, store, network_db_cache
    ):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)
        del provider._objects[store.get("cache_instance.cache").identifier]

        removed = refresh(store, provider)

        assert removed == ["cache_instance.cache"]
        plan = make_plan(network_db_cache)
        assert plan.operation_order() == ["create:cache_instance.cache"]

    def test_refresh_without_drift_writes_nothing(self, make_plan, make_executor, provider, store, network_db_cache):
        make_executor().apply(make_plan(network_db_cache), network_db_cache)
        serial = store.serial

        assert refresh(store, provider) == []
        assert store.serial == serial
