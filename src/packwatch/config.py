"""Watcher configuration for packwatch."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from packwatch._constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REGISTRY_URL,
    MIN_MAX_CONCURRENT,
    MIN_POLL_INTERVAL,
    VALID_LOG_LEVELS,
    VALID_OUTPUT_TYPES,
    VALID_PACKAGE_TYPES,
    VALID_TRANSPORT_TYPES,
)
from packwatch.exceptions import WatchConfigError
from packwatch.models.registry import split_server_name


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def parse_list(value: str | Iterable[str] | None, *, lower: bool = True) -> tuple[str, ...]:
    """Split a comma-separated string (or iterable of them) into unique, trimmed items.

    Empty items are dropped and first-seen order is kept.
    """
    if value is None:
        return ()
    raw_items = value.split(",") if isinstance(value, str) else [part for item in value for part in item.split(",")]
    seen: dict[str, None] = {}
    for item in raw_items:
        cleaned = item.strip()
        if lower:
            cleaned = cleaned.lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


def _check_allowed(kind: str, values: tuple[str, ...], valid: tuple[str, ...]) -> None:
    for value in values:
        if value not in valid:
            raise WatchConfigError(f"invalid {kind} {value!r}: must be one of {', '.join(valid)}")


@dataclasses.dataclass(frozen=True)
class WatchConfig:
    """Watcher configuration.

    Every field is validated on construction and list-valued fields are
    normalised, so a constructed config is always usable.

    Parameters
    ----------
    registry_url : str
        Base URL of the MCP registry.
    poll_interval : float
        Seconds between poll cycles. Must be at least 30.
    output_dir : Path
        Directory that receives generated packs.
    output_type : str
        ``"packdir"`` or ``"archive"`` (zip).
    state_file : Path
        JSON state file path.
    filter_package_types : tuple[str, ...]
        Allowed package types (npm, pypi, oci, nuget). Empty allows all.
    filter_transport_types : tuple[str, ...]
        Allowed transport types (stdio, http, sse). Empty allows all.
    filter_server_names : tuple[str, ...]
        ``namespace/name`` values to watch. Empty watches everything.
    dry_run : bool
        Evaluate without generating packs or writing state.
    force_overwrite : bool
        Regenerate every eligible entry, overwriting existing packs.
    allow_deprecated : bool
        Also generate packs for deprecated servers.
    max_concurrent : int
        Maximum pack generations in flight. ``1`` is strictly sequential.
    log_level : str
        One of debug, info, warning, error.
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    output_dir: Path = Path("./packs")
    output_type: str = "packdir"
    state_file: Path = Path("./watch.json")
    filter_package_types: tuple[str, ...] = ()
    filter_transport_types: tuple[str, ...] = ()
    filter_server_names: tuple[str, ...] = ()
    dry_run: bool = False
    force_overwrite: bool = False
    allow_deprecated: bool = False
    max_concurrent: int = 1
    log_level: str = "info"

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "registry_url", str(self.registry_url).strip().rstrip("/"))
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        object.__setattr__(self, "output_type", str(self.output_type).strip().lower())
        object.__setattr__(self, "log_level", str(self.log_level).strip().lower())
        object.__setattr__(self, "filter_package_types", parse_list(self.filter_package_types))
        object.__setattr__(self, "filter_transport_types", parse_list(self.filter_transport_types))
        object.__setattr__(self, "filter_server_names", parse_list(self.filter_server_names, lower=False))

        if not self.registry_url:
            raise WatchConfigError("registry URL cannot be empty")
        if not str(self.state_file).strip():
            raise WatchConfigError("state file path cannot be empty")
        object.__setattr__(self, "state_file", Path(self.state_file))
        if self.poll_interval < MIN_POLL_INTERVAL:
            raise WatchConfigError(
                f"poll interval must be at least {MIN_POLL_INTERVAL} seconds, got {self.poll_interval}"
            )
        if self.max_concurrent < MIN_MAX_CONCURRENT:
            raise WatchConfigError(f"max concurrent must be at least {MIN_MAX_CONCURRENT}, got {self.max_concurrent}")
        if self.output_type not in VALID_OUTPUT_TYPES:
            raise WatchConfigError(
                f"invalid output type {self.output_type!r}: must be one of {', '.join(VALID_OUTPUT_TYPES)}"
            )
        if self.log_level not in VALID_LOG_LEVELS:
            raise WatchConfigError(
                f"invalid log level {self.log_level!r}: must be one of {', '.join(VALID_LOG_LEVELS)}"
            )
        _check_allowed("package type", self.filter_package_types, VALID_PACKAGE_TYPES)
        _check_allowed("transport type", self.filter_transport_types, VALID_TRANSPORT_TYPES)
        for server_name in self.filter_server_names:
            try:
                split_server_name(server_name)
            except ValueError as exc:
                raise WatchConfigError(str(exc)) from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> WatchConfig:
        """Create configuration from ``PACKWATCH_*`` environment variables.

        Explicit keyword arguments override environment values; ``None``
        overrides are ignored so CLI flags that were not given fall through
        to the environment and then to the defaults.

        Raises :class:`WatchConfigError` for malformed numeric values or any
        value rejected by validation.
        """
        env = os.environ
        overrides = {key: value for key, value in overrides.items() if value is not None}

        _ENV_STR_MAP = {
            "PACKWATCH_REGISTRY_URL": "registry_url",
            "PACKWATCH_OUTPUT_DIR": "output_dir",
            "PACKWATCH_OUTPUT_TYPE": "output_type",
            "PACKWATCH_STATE_FILE": "state_file",
            "PACKWATCH_FILTER_PACKAGE_TYPES": "filter_package_types",
            "PACKWATCH_FILTER_TRANSPORT_TYPES": "filter_transport_types",
            "PACKWATCH_FILTER_SERVER_NAMES": "filter_server_names",
            "PACKWATCH_LOG_LEVEL": "log_level",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            interval_env = env.get("PACKWATCH_POLL_INTERVAL")
            if interval_env is not None:
                config_kwargs["poll_interval"] = float(interval_env)
            concurrent_env = env.get("PACKWATCH_MAX_CONCURRENT")
            if concurrent_env is not None:
                config_kwargs["max_concurrent"] = int(concurrent_env)
        except ValueError as exc:
            raise WatchConfigError(f"invalid numeric environment value: {exc}") from exc

        for env_key, field_name in (
            ("PACKWATCH_DRY_RUN", "dry_run"),
            ("PACKWATCH_FORCE_OVERWRITE", "force_overwrite"),
            ("PACKWATCH_ALLOW_DEPRECATED", "allow_deprecated"),
        ):
            config_kwargs[field_name] = _env_bool(env.get(env_key), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
