"""Key/value persistence with a synced scope (preferences) and a local scope (counters)."""
from __future__ import annotations

import copy
import fcntl
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Protocol

from autopilot.log import get_logger

log = get_logger(__name__)

SYNC = "sync"
LOCAL = "local"
SCOPES: tuple[str, ...] = (SYNC, LOCAL)


class PersistenceWriteFailure(Exception):
    """A store write did not reach durable storage."""


class KeyValueStore(Protocol):
    def get(self, scope: str, keys: Iterable[str]) -> dict[str, Any]: ...

    def set(self, scope: str, values: dict[str, Any]) -> None: ...


def _check_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise ValueError(f"Unknown storage scope {scope!r}")


class MemoryStore:
    """In-process store; values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        self._data: dict[str, dict[str, Any]] = {s: {} for s in SCOPES}
        for scope, values in (initial or {}).items():
            _check_scope(scope)
            self._data[scope].update(copy.deepcopy(values))

    def get(self, scope: str, keys: Iterable[str]) -> dict[str, Any]:
        _check_scope(scope)
        bucket = self._data[scope]
        return {k: copy.deepcopy(bucket[k]) for k in keys if k in bucket}

    def set(self, scope: str, values: dict[str, Any]) -> None:
        _check_scope(scope)
        self._data[scope].update(copy.deepcopy(values))


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


class JsonFileStore:
    """One JSON document per scope under *data_dir* (``sync.json``, ``local.json``).

    Readers and writers serialise on a ``{scope}.lock`` sidecar, so a
    read-update-replace in one process cannot interleave with another's.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def _path(self, scope: str) -> Path:
        _check_scope(scope)
        return self.data_dir / f"{scope}.json"

    @contextmanager
    def _locked(self, scope: str, exclusive: bool) -> Iterator[None]:
        with open(self.data_dir / f"{scope}.lock", "a", encoding="utf-8") as f:
            _lock(f, exclusive)
            try:
                yield
            finally:
                _unlock(f)

    def _load(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            log.warning("Could not read %s: %s", path.name, exc)
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.warning("Corrupt %s ignored: %s", path.name, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, scope: str, keys: Iterable[str]) -> dict[str, Any]:
        path = self._path(scope)
        if not path.exists():
            return {}
        try:
            with self._locked(scope, exclusive=False):
                data = self._load(path)
        except OSError as exc:
            log.warning("Could not lock %s: %s", path.name, exc)
            data = self._load(path)
        return {k: data[k] for k in keys if k in data}

    def set(self, scope: str, values: dict[str, Any]) -> None:
        path = self._path(scope)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with self._locked(scope, exclusive=True):
                data = self._load(path)
                data.update(values)
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                    f.flush()
                tmp.replace(path)
        except (OSError, TypeError) as exc:
            raise PersistenceWriteFailure(f"{path.name}: {exc}") from exc
        log.debug("Persisted %s → %s", ", ".join(sorted(values)), path.name)
