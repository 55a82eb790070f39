"""Local provider: a simulated cloud kept in memory or in a JSON file."""

import hashlib
import ipaddress
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple
from .base import Provider
from ..utils.errors import (
    DependencyViolationError,
    NotFoundError,
    PermanentProviderError,
    StateError,
)
from ..utils.logging import get_logger

logger = get_logger("providers.local")

PROJECT = "local-project"
# Input keys that name a resource rather than point at another one.
_NAMING_KEYS = {"name", "account_id", "display_name", "description"}


def _digest(*parts: str) -> str:
    return hashlib.sha1("/".join(parts).encode("utf-8")).hexdigest()[:8]


class LocalProvider(Provider):
    """
    Simulated cloud used for local runs, demos and tests.

    Objects are stored by identifier. When ``path`` is given the simulated cloud
    survives between runs. Deleting an object whose outputs are still used as an
    input by another object is refused with DependencyViolationError.
    """

    name = "local"

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._counter = 0
        self._lock = threading.RLock()
        if self.path is not None and self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Local provider file {self.path} is unreadable: {e}")
        self._objects = data.get("objects", {})
        self._counter = data.get("counter", len(self._objects))
        logger.debug(f"Loaded {len(self._objects)} simulated objects from {self.path}")

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump({"objects": self._objects, "counter": self._counter}, f, indent=2, sort_keys=True)
        os.replace(tmp_name, self.path)

    def objects(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every simulated object by identifier."""
        with self._lock:
            return json.loads(json.dumps(self._objects))

    def create(self, resource_type: str, inputs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        with self._lock:
            label = self._label(resource_type, inputs)
            for obj in self._objects.values():
                if obj["type"] == resource_type and self._label(resource_type, obj["inputs"]) == label:
                    raise PermanentProviderError(f"{resource_type} '{label}' already exists")

            self._counter += 1
            identifier = f"{resource_type}/{label}-{_digest(resource_type, label, str(self._counter))}"
            outputs = self._outputs(resource_type, identifier, inputs, self._counter)
            self._objects[identifier] = {
                "type": resource_type, "inputs": dict(inputs), "outputs": outputs, "ordinal": self._counter,
            }
            self._save()
            logger.info(f"Created {identifier}")
            return identifier, dict(outputs)

    def read(self, resource_type: str, identifier: str) -> Dict[str, Any]:
        with self._lock:
            obj = self._get(resource_type, identifier)
            return dict(obj["outputs"])

    def update(self, resource_type: str, identifier: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            obj = self._get(resource_type, identifier)
            ordinal = int(obj.get("ordinal", 0))
            obj["inputs"] = dict(inputs)
            obj["outputs"] = self._outputs(resource_type, identifier, inputs, ordinal)
            self._save()
            logger.info(f"Updated {identifier}")
            return dict(obj["outputs"])

    def delete(self, resource_type: str, identifier: str) -> None:
        with self._lock:
            obj = self._get(resource_type, identifier)
            users = list(self._users_of(identifier, obj))
            if users:
                raise DependencyViolationError(
                    f"{identifier} is still in use by {', '.join(sorted(users))}"
                )
            del self._objects[identifier]
            self._save()
            logger.info(f"Deleted {identifier}")

    def _get(self, resource_type: str, identifier: str) -> Dict[str, Any]:
        obj = self._objects.get(identifier)
        if obj is None or obj["type"] != resource_type:
            raise NotFoundError(f"{resource_type} {identifier} not found")
        return obj

    def _users_of(self, identifier: str, obj: Dict[str, Any]) -> Iterable[str]:
        markers = {
            str(value) for key, value in obj["outputs"].items()
            if key in ("id", "self_link", "email", "name", "connection_name") and value
        }
        for other_id, other in self._objects.items():
            if other_id == identifier:
                continue
            for key, value in other["inputs"].items():
                if key in _NAMING_KEYS:
                    continue
                values = value if isinstance(value, list) else [value]
                if any(str(v).removeprefix("serviceAccount:") in markers for v in values):
                    yield other_id
                    break

    @staticmethod
    def _label(resource_type: str, inputs: Dict[str, Any]) -> str:
        for key in ("name", "account_id"):
            if inputs.get(key):
                return str(inputs[key])
        return _digest(resource_type, json.dumps(inputs, sort_keys=True, default=str))

    @staticmethod
    def _outputs(resource_type: str, identifier: str, inputs: Dict[str, Any], ordinal: int) -> Dict[str, Any]:
        name = inputs.get("name", "")
        region = inputs.get("region", "global")
        link = f"https://compute.local/projects/{PROJECT}/{region}/{resource_type}/{name}"
        private_ip = str(ipaddress.IPv4Address("10.100.0.2") + ordinal)
        outputs: Dict[str, Any] = {"id": identifier}

        if resource_type in ("network", "vpc_access_connector"):
            outputs.update(name=name, self_link=link)
        elif resource_type == "subnetwork":
            network = ipaddress.ip_network(inputs.get("ip_cidr_range", "10.0.0.0/24"), strict=False)
            outputs.update(name=name, self_link=link, gateway_address=str(network.network_address + 1))
        elif resource_type == "global_address":
            outputs.update(name=name, address=str(ipaddress.IPv4Address("10.200.0.0") + ordinal * 256))
        elif resource_type == "service_networking_connection":
            outputs.update(peering="servicenetworking-googleapis-com")
        elif resource_type == "sql_instance":
            outputs.update(
                name=name,
                connection_name=f"{PROJECT}:{region}:{name}",
                private_ip_address=private_ip,
                self_link=link,
            )
        elif resource_type in ("sql_database", "sql_user"):
            outputs.update(name=name)
        elif resource_type == "cache_instance":
            outputs.update(name=name, host=private_ip, port=6379)
        elif resource_type == "service_account":
            account_id = inputs.get("account_id", "")
            outputs.update(
                name=f"projects/{PROJECT}/serviceAccounts/{account_id}",
                email=f"{account_id}@{PROJECT}.iam.local",
            )
        elif resource_type == "container_service":
            outputs.update(name=name, uri=f"https://{name}-{_digest(name, region)}.run.local")
        elif resource_type == "iam_invoker_binding":
            outputs.update(etag=_digest(json.dumps(inputs, sort_keys=True, default=str)))
        elif resource_type == "load_balancer":
            outputs.update(name=name, ip_address=str(ipaddress.IPv4Address("34.120.0.0") + ordinal))
        else:
            outputs.update(name=name)
        return outputs
