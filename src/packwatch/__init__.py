"""packwatch - watch an MCP registry and generate deployment packs for new or changed packages."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("packwatch")
except PackageNotFoundError:
    __version__ = "0+local"
from packwatch.config import WatchConfig
from packwatch.exceptions import (
    PackExistsError,
    PackGenerationError,
    PackwatchError,
    RegistryError,
    RegistryTransportError,
    StartupError,
    StateError,
    StatePersistenceError,
    WatchConfigError,
)
from packwatch.filters import is_eligible
from packwatch.generator import FilesystemPackGenerator, GenerateOptions, PackGenerator
from packwatch.models import PackageEntry, StateKey, format_state_key, parse_state_key
from packwatch.registry import RegistryClient
from packwatch.state import ServerState, WatchState, load_state, needs_generation, save_state
from packwatch.watcher import CycleReport, Watcher, WatcherPhase

__all__ = [
    "__version__",
    "CycleReport",
    "FilesystemPackGenerator",
    "GenerateOptions",
    "PackExistsError",
    "PackGenerationError",
    "PackGenerator",
    "PackageEntry",
    "PackwatchError",
    "RegistryClient",
    "RegistryError",
    "RegistryTransportError",
    "ServerState",
    "StartupError",
    "StateError",
    "StateKey",
    "StatePersistenceError",
    "WatchConfig",
    "WatchConfigError",
    "WatchState",
    "Watcher",
    "WatcherPhase",
    "format_state_key",
    "is_eligible",
    "load_state",
    "needs_generation",
    "parse_state_key",
    "save_state",
]
