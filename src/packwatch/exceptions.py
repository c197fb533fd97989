"""Custom exception hierarchy for packwatch."""

from __future__ import annotations


class PackwatchError(Exception):
    """Base exception for all packwatch errors."""


class WatchConfigError(PackwatchError):
    """Invalid or missing configuration."""


class StartupError(PackwatchError):
    """The watcher cannot start (e.g. output directory cannot be created)."""


class RegistryError(PackwatchError):
    """Listing the registry failed. Always treated as transient by the watcher."""


class RegistryTransportError(RegistryError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class StateError(PackwatchError):
    """The state file exists but cannot be read."""


class StatePersistenceError(StateError):
    """The state file could not be written.

    The in-memory state is still intact; the next cycle tries again.
    """


class PackGenerationError(PackwatchError):
    """Generating a pack failed (rendering, I/O, ...)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class PackExistsError(PackGenerationError):
    """Pack directory or archive already exists and force-overwrite is off."""
