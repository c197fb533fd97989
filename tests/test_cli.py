from __future__ import annotations

from pathlib import Path

import pytest

import packwatch.__main__ as cli
from packwatch.__main__ import (
    EXIT_BAD_CONFIG,
    EXIT_OK,
    EXIT_STARTUP_FAILED,
    _config_from_args,
    _parse_args,
    main,
)
from packwatch.exceptions import StartupError
from packwatch.watcher import Watcher


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("PACKWATCH_POLL_INTERVAL", "PACKWATCH_OUTPUT_DIR", "PACKWATCH_STATE_FILE", "PACKWATCH_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


def test_flags_map_onto_config(tmp_path: Path) -> None:
    args = _parse_args(
        [
            "watch",
            "--poll-interval",
            "60",
            "--output-dir",
            str(tmp_path / "out"),
            "--output-type",
            "archive",
            "--filter-package-types",
            "npm,pypi",
            "--max-concurrent",
            "3",
            "--dry-run",
            "-v",
        ]
    )
    config = _config_from_args(args)

    assert config.poll_interval == 60
    assert config.output_dir == tmp_path / "out"
    assert config.output_type == "archive"
    assert config.filter_package_types == ("npm", "pypi")
    assert config.max_concurrent == 3
    assert config.dry_run is True
    assert config.force_overwrite is False
    assert config.log_level == "debug"


def test_unset_flags_fall_back_to_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKWATCH_POLL_INTERVAL", "90")
    config = _config_from_args(_parse_args(["watch"]))
    assert config.poll_interval == 90


def test_invalid_configuration_exits_2(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["watch", "--poll-interval", "5"]) == EXIT_BAD_CONFIG
    assert "invalid configuration" in capsys.readouterr().err


def test_uncreatable_output_dir_exits_1(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    code = main(
        [
            "watch",
            "--output-dir",
            str(blocker / "packs"),
            "--state-file",
            str(tmp_path / "watch.json"),
        ]
    )

    assert code == EXIT_STARTUP_FAILED


def test_signal_handlers_are_installed_before_startup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    order: list[str] = []

    def fake_install(_watcher: Watcher) -> None:
        order.append("signals")

    def fake_prepare(_self: Watcher) -> None:
        order.append("prepare")
        raise StartupError("no disk")

    monkeypatch.setattr(cli, "_install_signal_handlers", fake_install)
    monkeypatch.setattr(Watcher, "prepare", fake_prepare)

    assert main(["watch", "--state-file", str(tmp_path / "watch.json")]) == EXIT_STARTUP_FAILED
    assert order == ["signals", "prepare"]


def test_interrupt_during_startup_exits_cleanly(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def interrupted(_config: object) -> int:
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "_run_watch", interrupted)

    assert main(["watch", "--state-file", str(tmp_path / "watch.json")]) == EXIT_OK
