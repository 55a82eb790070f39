"""File-backed state store with per-resource commits and a lease lock."""

import getpass
import json
import os
import socket
import tempfile
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from pydantic import ValidationError
from .models import LockInfo, ResourceState, StateDocument, STATE_FORMAT_VERSION, utcnow
from ..utils.errors import LockHeldError, StateConflictError, StateError
from ..utils.logging import get_logger

logger = get_logger("state.store")


def _default_holder() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}:{os.getpid()}"


class StateStore:
    """
    Durable record of converged resources for one deployment.

    Every write re-reads the document, checks the serial against the last one
    this store saw, and replaces the file atomically with the serial bumped.
    """

    def __init__(self, path: str, stale_after_seconds: float = 900, holder: Optional[str] = None):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.stale_after_seconds = stale_after_seconds
        self.holder = holder or _default_holder()
        self._serial: Optional[int] = None
        self._lock_id: Optional[str] = None
        self._mutex = threading.Lock()

    # Reading

    def _read(self) -> StateDocument:
        if not self.path.exists():
            return StateDocument(lineage=str(uuid.uuid4()))
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StateError(f"State file {self.path} is not valid JSON: {e}")
        except OSError as e:
            raise StateError(f"Error reading state file {self.path}: {e}")

        try:
            document = StateDocument(**data)
        except ValidationError as e:
            raise StateError(f"State file {self.path} has an invalid structure: {e}")
        if document.version > STATE_FORMAT_VERSION:
            raise StateError(
                f"State file {self.path} has format version {document.version}; "
                f"this tierform supports up to {STATE_FORMAT_VERSION}"
            )
        return document

    def document(self) -> StateDocument:
        """
        Read the full state document.

        The first read sets the serial this store expects on disk. Later reads
        never move it; only this store's own commits and taking the lock do, so
        a foreign write between two reads still fails the next commit.
        """
        with self._mutex:
            document = self._read()
            if self._serial is None:
                self._serial = document.serial
            return document

    def load(self) -> List[ResourceState]:
        """All resource states, ordered by address."""
        document = self.document()
        return [document.resources[a] for a in sorted(document.resources)]

    def get(self, address: str) -> Optional[ResourceState]:
        return self.document().resources.get(address)

    def outputs(self) -> Dict[str, Any]:
        return dict(self.document().outputs)

    @property
    def serial(self) -> int:
        return self.document().serial

    # Writing

    def upsert(self, state: ResourceState) -> None:
        """Commit one resource's state."""
        def mutate(document: StateDocument) -> None:
            prior = document.resources.get(state.address)
            if prior is not None:
                state.created_at = prior.created_at
            state.updated_at = utcnow()
            document.resources[state.address] = state
        self._commit(mutate, f"upsert {state.address}")

    def remove(self, address: str) -> bool:
        """Remove one resource's state; returns whether it was present."""
        removed = []

        def mutate(document: StateDocument) -> None:
            removed.append(document.resources.pop(address, None) is not None)
        self._commit(mutate, f"remove {address}")
        return removed[0]

    def set_outputs(self, outputs: Dict[str, Any]) -> None:
        def mutate(document: StateDocument) -> None:
            document.outputs = dict(outputs)
        self._commit(mutate, "set outputs")

    def _commit(self, mutate, description: str) -> None:
        with self._mutex:
            document = self._read()
            if self._serial is not None and document.serial != self._serial:
                raise StateConflictError(
                    f"State file {self.path} changed on disk (serial {document.serial}, expected {self._serial}); "
                    "another process may be writing to this deployment"
                )
            mutate(document)
            document.serial += 1
            self._write(document)
            self._serial = document.serial
            logger.debug(f"State commit ({description}), serial {document.serial}")

    def _write(self, document: StateDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = document.model_dump_json(indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StateError(f"Failed to write state file {self.path}: {e}")

    # Locking

    def read_lock(self) -> Optional[LockInfo]:
        if not self.lock_path.exists():
            return None
        try:
            with open(self.lock_path, 'r', encoding='utf-8') as f:
                return LockInfo(**json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StateError(f"Lock file {self.lock_path} is unreadable: {e}")

    def acquire_lock(self, operation: str) -> LockInfo:
        """
        Take the deployment lock.

        Raises:
            LockHeldError: If another run holds the lock (stale locks are reported, not broken)
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        info = LockInfo(id=str(uuid.uuid4()), holder=self.holder, operation=operation)
        try:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            held = self.read_lock()
            if held is None:
                return self.acquire_lock(operation)
            raise LockHeldError(
                lock_id=held.id,
                holder=held.holder,
                operation=held.operation,
                created_at=held.created_at.isoformat(),
                stale=held.age_seconds() > self.stale_after_seconds,
            )
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(info.model_dump_json())
        self._lock_id = info.id
        with self._mutex:
            self._serial = self._read().serial
        logger.info(f"Acquired state lock {info.id} for {operation}")
        return info

    def release_lock(self) -> None:
        if self._lock_id is None:
            return
        held = self.read_lock()
        if held is not None and held.id == self._lock_id:
            self.lock_path.unlink()
            logger.info(f"Released state lock {self._lock_id}")
        else:
            logger.warning(f"State lock {self._lock_id} was removed or replaced by another process")
        self._lock_id = None

    @contextmanager
    def lock(self, operation: str) -> Iterator[LockInfo]:
        """Hold the deployment lock for the duration of a with-block."""
        info = self.acquire_lock(operation)
        try:
            yield info
        finally:
            self.release_lock()

    def force_unlock(self, lock_id: str) -> None:
        """Remove a lock left behind by a crashed run."""
        held = self.read_lock()
        if held is None:
            raise StateError("State is not locked")
        if held.id != lock_id:
            raise StateError(f"Lock id mismatch: state is locked with id {held.id}, not {lock_id}")
        self.lock_path.unlink()
        logger.warning(f"Force-unlocked state lock {lock_id} held by {held.holder}")
