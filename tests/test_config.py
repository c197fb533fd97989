from __future__ import annotations

from pathlib import Path

import pytest

from packwatch.config import WatchConfig, parse_list
from packwatch.exceptions import WatchConfigError

_ENV_KEYS = (
    "PACKWATCH_REGISTRY_URL",
    "PACKWATCH_POLL_INTERVAL",
    "PACKWATCH_OUTPUT_DIR",
    "PACKWATCH_OUTPUT_TYPE",
    "PACKWATCH_STATE_FILE",
    "PACKWATCH_FILTER_PACKAGE_TYPES",
    "PACKWATCH_FILTER_TRANSPORT_TYPES",
    "PACKWATCH_FILTER_SERVER_NAMES",
    "PACKWATCH_MAX_CONCURRENT",
    "PACKWATCH_DRY_RUN",
    "PACKWATCH_FORCE_OVERWRITE",
    "PACKWATCH_ALLOW_DEPRECATED",
    "PACKWATCH_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = WatchConfig()
    assert config.registry_url == "https://registry.modelcontextprotocol.io"
    assert config.poll_interval == 300
    assert config.output_dir == Path("./packs")
    assert config.output_type == "packdir"
    assert config.state_file == Path("./watch.json")
    assert config.filter_package_types == ()
    assert config.max_concurrent == 1
    assert not config.dry_run


def test_lists_are_normalised() -> None:
    config = WatchConfig(
        filter_package_types=" NPM, pypi ,npm,,",
        filter_transport_types=("stdio,SSE",),
        filter_server_names="io.github.Acme/weather, io.github.Acme/weather",
    )
    assert config.filter_package_types == ("npm", "pypi")
    assert config.filter_transport_types == ("stdio", "sse")
    # Server names keep their case.
    assert config.filter_server_names == ("io.github.Acme/weather",)


def test_registry_url_trailing_slash_is_stripped() -> None:
    assert WatchConfig(registry_url="https://example.test/").registry_url == "https://example.test"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"poll_interval": 29},
        {"max_concurrent": 0},
        {"output_type": "tarball"},
        {"log_level": "verbose"},
        {"filter_package_types": "npm,cargo"},
        {"filter_transport_types": "websocket"},
        {"filter_server_names": "no-namespace"},
        {"registry_url": "  "},
        {"state_file": ""},
    ],
)
def test_invalid_values_are_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(WatchConfigError):
        WatchConfig(**kwargs)


def test_minimum_poll_interval_is_accepted() -> None:
    assert WatchConfig(poll_interval=30).poll_interval == 30


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PACKWATCH_REGISTRY_URL", "https://registry.example.test")
    monkeypatch.setenv("PACKWATCH_POLL_INTERVAL", "45")
    monkeypatch.setenv("PACKWATCH_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("PACKWATCH_OUTPUT_TYPE", "archive")
    monkeypatch.setenv("PACKWATCH_STATE_FILE", str(tmp_path / "state.json"))
    monkeypatch.setenv("PACKWATCH_FILTER_PACKAGE_TYPES", "npm")
    monkeypatch.setenv("PACKWATCH_MAX_CONCURRENT", "4")
    monkeypatch.setenv("PACKWATCH_DRY_RUN", "yes")
    monkeypatch.setenv("PACKWATCH_LOG_LEVEL", "DEBUG")

    config = WatchConfig.from_env()

    assert config.registry_url == "https://registry.example.test"
    assert config.poll_interval == 45.0
    assert config.output_dir == tmp_path / "out"
    assert config.output_type == "archive"
    assert config.state_file == tmp_path / "state.json"
    assert config.filter_package_types == ("npm",)
    assert config.max_concurrent == 4
    assert config.dry_run is True
    assert config.force_overwrite is False
    assert config.log_level == "debug"


def test_overrides_win_and_none_falls_through(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKWATCH_POLL_INTERVAL", "60")
    monkeypatch.setenv("PACKWATCH_OUTPUT_TYPE", "archive")

    config = WatchConfig.from_env(poll_interval=120, output_type=None, force_overwrite=True)

    assert config.poll_interval == 120
    assert config.output_type == "archive"
    assert config.force_overwrite is True


def test_malformed_numeric_env_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKWATCH_MAX_CONCURRENT", "many")
    with pytest.raises(WatchConfigError):
        WatchConfig.from_env()


def test_env_values_are_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKWATCH_POLL_INTERVAL", "5")
    with pytest.raises(WatchConfigError, match="at least 30"):
        WatchConfig.from_env()


def test_parse_list() -> None:
    assert parse_list(None) == ()
    assert parse_list("") == ()
    assert parse_list("a, B ,a") == ("a", "b")
    assert parse_list(["x,y", "Y"], lower=False) == ("x", "y", "Y")
