"""Shared fixtures: declarations, a scriptable provider and a state store."""

import time
import pytest
from tierform.config import RetrySettings
from tierform.execution import Executor
from tierform.ingest.models import DeclarationSet, Reference, ResourceDeclaration
from tierform.providers.local import LocalProvider
from tierform.schema.registry import SchemaRegistry
from tierform.state.store import StateStore


class ScriptedProvider(LocalProvider):
    """In-memory LocalProvider that can be told to fail or stall specific calls."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self._failures = {}
        self._delays = {}

    def fail(self, method, label, error, times=None):
        """Raise ``error`` on ``method`` for the object labelled ``label`` (``times`` None = always)."""
        self._failures[(method, label)] = [error, times]

    def stall(self, method, label, seconds):
        self._delays[(method, label)] = seconds

    def _script(self, method, label):
        self.calls.append((method, label))
        entry = self._failures.get((method, label))
        if entry is not None and (entry[1] is None or entry[1] > 0):
            if entry[1] is not None:
                entry[1] -= 1
            raise entry[0]
        if (method, label) in self._delays:
            time.sleep(self._delays[(method, label)])

    def calls_for(self, method, label):
        return [c for c in self.calls if c == (method, label)]

    def create(self, resource_type, inputs):
        self._script("create", self._label(resource_type, inputs))
        return super().create(resource_type, inputs)

    def update(self, resource_type, identifier, inputs):
        self._script("update", self._label(resource_type, inputs))
        return super().update(resource_type, identifier, inputs)

    def delete(self, resource_type, identifier):
        obj = self._objects.get(identifier)
        label = self._label(resource_type, obj["inputs"]) if obj else identifier
        self._script("delete", label)
        return super().delete(resource_type, identifier)


@pytest.fixture
def registry():
    return SchemaRegistry()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def store(tmp_path):
    return StateStore(str(tmp_path / "state.json"))


@pytest.fixture
def fast_retry():
    """Retry policy without backoff waits."""
    return RetrySettings(max_attempts=3, backoff_multiplier=0, backoff_max_seconds=0)


@pytest.fixture
def make_executor(registry, provider, store, fast_retry):
    """Factory for an Executor wired to the scripted provider and temp store."""
    def make(**kwargs):
        kwargs.setdefault("retry", fast_retry)
        return Executor(registry, provider, store, **kwargs)
    return make


@pytest.fixture
def declare():
    """Factory for ResourceDeclarations; indexes follow call order."""
    counter = {"index": 0}

    def make(resource_type, name, inputs=None, depends_on=None, module=None):
        declaration = ResourceDeclaration(
            type=resource_type,
            name=name,
            module=module,
            inputs=inputs or {},
            depends_on=depends_on or [],
            index=counter["index"],
        )
        counter["index"] += 1
        return declaration
    return make


@pytest.fixture
def network_db_cache(declare):
    """network <- database, network <- cache."""
    return DeclarationSet(resources=[
        declare("network", "main", {"name": "app-vpc"}),
        declare("sql_instance", "db", {
            "name": "app-db",
            "region": "us-central1",
            "private_network": Reference(target="network.main", attribute="self_link"),
        }),
        declare("cache_instance", "cache", {
            "name": "app-cache",
            "region": "us-central1",
            "authorized_network": Reference(target="network.main", attribute="id"),
        }),
    ])
