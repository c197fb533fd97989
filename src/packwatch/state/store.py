"""Persisted watch state.

The whole state lives in one JSON file that is only ever replaced
atomically (write temp file, fsync, rename), so external readers and a
restarted daemon never observe a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from packwatch.exceptions import StateError, StatePersistenceError
from packwatch.models._base import OptionalTimestamp, ensure_utc
from packwatch.models.entry import PackageEntry, StateKey

_logger = logging.getLogger(__name__)

CORRUPT_SUFFIX = ".corrupt"


class ServerState(BaseModel):
    """Generation record for one state key."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    namespace: str
    name: str
    version: str
    package_type: str
    transport_type: str
    updated_at: OptionalTimestamp = None
    generated_at: OptionalTimestamp = None
    """Set only after a successful generation."""

    @field_validator("updated_at", "generated_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def key(self) -> StateKey:
        return StateKey(self.namespace, self.name, self.version, self.package_type, self.transport_type)


class WatchState(BaseModel):
    """Root of the state file: last successful poll plus one record per key."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    last_poll: OptionalTimestamp = None
    servers: dict[str, ServerState] = Field(default_factory=dict)

    @field_validator("last_poll")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @field_validator("servers", mode="before")
    @classmethod
    def _null_servers(cls, value: object) -> object:
        return {} if value is None else value

    def get(self, key: StateKey | str) -> ServerState | None:
        return self.servers.get(str(key))

    def record_generated(self, entry: PackageEntry, generated_at: datetime) -> ServerState:
        """Insert or replace the record for *entry* after a successful generation.

        ``updated_at`` falls back to *generated_at* when the registry did not
        report a modification time.
        """
        server = ServerState(
            namespace=entry.namespace,
            name=entry.name,
            version=entry.version,
            package_type=entry.package_type,
            transport_type=entry.transport_type,
            updated_at=entry.updated_at or generated_at,
            generated_at=generated_at,
        )
        key = str(server.key)
        self.servers[key] = server
        _logger.debug("State updated for %s (%d entries)", key, len(self.servers))
        return server

    def advance_last_poll(self, now: datetime) -> datetime:
        """Move ``last_poll`` forward to *now*; never backwards."""
        candidate = ensure_utc(now)
        if candidate is not None and (self.last_poll is None or candidate > self.last_poll):
            self.last_poll = candidate
        return self.last_poll

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"


def _rekey(state: WatchState, path: Path) -> WatchState:
    """Drop records with unusable identities and re-key mismatched ones."""
    servers: dict[str, ServerState] = {}
    for key, server in state.servers.items():
        try:
            canonical = str(server.key)
        except ValueError as exc:
            _logger.warning("Dropping state entry %r from %s: %s", key, path, exc)
            continue
        if canonical != key:
            _logger.warning("State entry %r in %s re-keyed to %r", key, path, canonical)
        servers[canonical] = server
    state.servers = servers
    return state


def _move_aside(path: Path) -> None:
    target = path.with_name(path.name + CORRUPT_SUFFIX)
    try:
        os.replace(path, target)
    except OSError as exc:
        _logger.warning("Could not move corrupt state file %s aside: %s", path, exc)
        return
    _logger.warning("Corrupt state file moved to %s", target)


def load_state(path: str | os.PathLike[str], *, quarantine: bool = True) -> WatchState:
    """Load the watch state from *path*.

    A missing file yields an empty state. A file that does not parse also
    yields an empty state and, with *quarantine*, is moved aside to
    ``<path>.corrupt``; corruption is never fatal.
    Raises :class:`StateError` only when the file exists but cannot be read.
    """
    state_path = Path(path)
    try:
        text = state_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        _logger.debug("State file %s does not exist, starting with empty state", state_path)
        return WatchState()
    except UnicodeDecodeError as exc:
        _logger.warning("State file %s is not valid UTF-8 (%s); starting with empty state", state_path, exc)
        if quarantine:
            _move_aside(state_path)
        return WatchState()
    except OSError as exc:
        raise StateError(f"failed to read state file {state_path}: {exc}") from exc

    try:
        state = WatchState.model_validate_json(text)
    except ValidationError as exc:
        first = exc.errors()[0]["msg"] if exc.errors() else str(exc)
        _logger.warning(
            "State file %s is corrupt (%d errors, first: %s); starting with empty state",
            state_path,
            exc.error_count(),
            first,
        )
        if quarantine:
            _move_aside(state_path)
        return WatchState()

    state = _rekey(state, state_path)
    _logger.debug(
        "State loaded from %s (%d entries, last poll %s)",
        state_path,
        len(state.servers),
        state.last_poll,
    )
    return state


def _fsync_dir(path: Path) -> None:
    """Flush directory metadata so the rename itself is durable."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(str(path), os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def save_state(path: str | os.PathLike[str], state: WatchState) -> None:
    """Atomically replace the state file at *path* with *state*.

    Raises :class:`StatePersistenceError` on any failure; the previous file
    is left untouched in that case.
    """
    state_path = Path(path)
    payload = state.to_json()
    tmp_path: Path | None = None
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(state_path.parent),
            prefix=f".{state_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tf:
            tmp_path = Path(tf.name)
            tf.write(payload)
            tf.flush()
            os.fsync(tf.fileno())
        os.replace(tmp_path, state_path)
        tmp_path = None
        _fsync_dir(state_path.parent)
    except OSError as exc:
        raise StatePersistenceError(f"failed to save state file {state_path}: {exc}") from exc
    finally:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)

    _logger.debug("State saved to %s (%d entries)", state_path, len(state.servers))
