from __future__ import annotations

import json
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from packwatch.exceptions import StateError, StatePersistenceError
from packwatch.models.entry import PackageEntry
from packwatch.state import ServerState, WatchState, load_state, needs_generation, save_state
from packwatch.state.store import CORRUPT_SUFFIX


def _dt(hour: int = 0) -> datetime:
    return datetime(2026, 1, 1, hour, tzinfo=UTC)


def _entry(version: str = "1.0.0", updated_at: datetime | None = None) -> PackageEntry:
    return PackageEntry(
        namespace="io.github.acme",
        name="weather",
        version=version,
        package_type="npm",
        transport_type="stdio",
        updated_at=updated_at,
    )


def test_missing_file_yields_empty_state(tmp_path: Path) -> None:
    state = load_state(tmp_path / "watch.json")
    assert state.last_poll is None
    assert state.servers == {}


def test_save_then_load_preserves_records(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    state = WatchState()
    state.record_generated(_entry(updated_at=_dt(1)), _dt(2))
    state.advance_last_poll(_dt(3))

    save_state(path, state)
    loaded = load_state(path)

    assert loaded.last_poll == _dt(3)
    record = loaded.get("io.github.acme/weather@1.0.0:npm:stdio")
    assert record is not None
    assert record.updated_at == _dt(1)
    assert record.generated_at == _dt(2)


def test_file_layout_matches_documented_format(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    state = WatchState()
    state.record_generated(_entry(updated_at=_dt(1)), _dt(2))
    state.advance_last_poll(_dt(3))
    save_state(path, state)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["last_poll"] == "2026-01-01T03:00:00Z"
    assert raw["servers"]["io.github.acme/weather@1.0.0:npm:stdio"] == {
        "namespace": "io.github.acme",
        "name": "weather",
        "version": "1.0.0",
        "package_type": "npm",
        "transport_type": "stdio",
        "updated_at": "2026-01-01T01:00:00Z",
        "generated_at": "2026-01-01T02:00:00Z",
    }


def test_save_leaves_no_temp_files(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    save_state(path, WatchState())
    save_state(path, WatchState())
    assert sorted(p.name for p in tmp_path.iterdir()) == ["watch.json"]


@pytest.mark.parametrize("content", ["{not json", "", "null", '{"servers": {"k": 1}}', "[]"])
def test_corrupt_file_yields_empty_state_and_is_moved_aside(tmp_path: Path, content: str) -> None:
    path = tmp_path / "watch.json"
    path.write_text(content, encoding="utf-8")

    state = load_state(path)

    assert state.servers == {}
    assert state.last_poll is None
    assert not path.exists()
    assert (tmp_path / f"watch.json{CORRUPT_SUFFIX}").read_text(encoding="utf-8") == content


def test_invalid_utf8_is_treated_as_corruption(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    assert load_state(path).servers == {}


def test_corrupt_file_is_kept_without_quarantine(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    path.write_text("{{ corrupt", encoding="utf-8")

    state = load_state(path, quarantine=False)

    assert state.servers == {}
    assert path.read_text(encoding="utf-8") == "{{ corrupt"
    assert not (tmp_path / f"watch.json{CORRUPT_SUFFIX}").exists()


def test_unreadable_file_raises_state_error(tmp_path: Path) -> None:
    # A directory where the file should be cannot be read as text.
    path = tmp_path / "watch.json"
    path.mkdir()
    with pytest.raises(StateError):
        load_state(path)


def test_zero_timestamps_from_older_files_read_as_missing(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    path.write_text(
        json.dumps(
            {
                "last_poll": "0001-01-01T00:00:00Z",
                "servers": {
                    "ns/srv@1.0.0:npm:stdio": {
                        "namespace": "ns",
                        "name": "srv",
                        "version": "1.0.0",
                        "package_type": "npm",
                        "transport_type": "stdio",
                        "updated_at": "2025-06-01T10:00:00Z",
                        "generated_at": "0001-01-01T00:00:00Z",
                        "checksum": "",
                    }
                },
            }
        ),
        encoding="utf-8",
    )

    state = load_state(path)

    assert state.last_poll is None
    record = state.get("ns/srv@1.0.0:npm:stdio")
    assert record is not None
    assert record.generated_at is None


def test_mismatched_keys_are_rekeyed(tmp_path: Path) -> None:
    path = tmp_path / "watch.json"
    path.write_text(
        json.dumps(
            {
                "last_poll": None,
                "servers": {
                    "stale-key": {
                        "namespace": "ns",
                        "name": "srv",
                        "version": "1.0.0",
                        "package_type": "npm",
                        "transport_type": "stdio",
                        "generated_at": "2025-06-01T10:00:00Z",
                    }
                },
            }
        ),
        encoding="utf-8",
    )
    state = load_state(path)
    assert list(state.servers) == ["ns/srv@1.0.0:npm:stdio"]


def test_failed_replace_keeps_previous_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "watch.json"
    original = WatchState()
    original.record_generated(_entry(), _dt(1))
    save_state(path, original)
    before = path.read_text(encoding="utf-8")

    def fail_replace(_src: object, _dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", fail_replace)
    updated = WatchState()
    updated.record_generated(_entry(version="2.0.0"), _dt(2))
    with pytest.raises(StatePersistenceError):
        save_state(path, updated)

    assert path.read_text(encoding="utf-8") == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["watch.json"]


def test_last_poll_never_moves_backwards() -> None:
    state = WatchState()
    state.advance_last_poll(_dt(5))
    state.advance_last_poll(_dt(3))
    assert state.last_poll == _dt(5)
    state.advance_last_poll(_dt(6))
    assert state.last_poll == _dt(6)


def test_record_without_registry_timestamp_uses_generation_time() -> None:
    state = WatchState()
    record = state.record_generated(_entry(updated_at=None), _dt(4))
    assert record.updated_at == _dt(4)


# ------------------------------------------------------------------
# Dedup policy
# ------------------------------------------------------------------


def _record(updated_at: datetime | None, generated_at: datetime | None) -> ServerState:
    return ServerState(
        namespace="io.github.acme",
        name="weather",
        version="1.0.0",
        package_type="npm",
        transport_type="stdio",
        updated_at=updated_at,
        generated_at=generated_at,
    )


def test_unknown_key_needs_generation() -> None:
    assert needs_generation(None, _entry(updated_at=_dt(1)))


def test_unchanged_entry_is_skipped() -> None:
    assert not needs_generation(_record(_dt(1), _dt(2)), _entry(updated_at=_dt(1)))


def test_newer_updated_at_regenerates() -> None:
    existing = _record(_dt(1), _dt(2))
    assert needs_generation(existing, _entry(updated_at=_dt(1) + timedelta(seconds=1)))


def test_older_updated_at_is_skipped() -> None:
    assert not needs_generation(_record(_dt(3), _dt(4)), _entry(updated_at=_dt(1)))


def test_never_generated_record_regenerates() -> None:
    assert needs_generation(_record(_dt(1), None), _entry(updated_at=_dt(1)))


def test_missing_incoming_timestamp_counts_as_unchanged() -> None:
    assert not needs_generation(_record(_dt(1), _dt(2)), _entry(updated_at=None))


def test_force_overwrite_always_regenerates() -> None:
    assert needs_generation(_record(_dt(1), _dt(2)), _entry(updated_at=_dt(1)), force_overwrite=True)
