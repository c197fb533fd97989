"""Data models: package entries, state keys and registry responses."""

from packwatch.models.entry import PackageEntry, StateKey, format_state_key, parse_state_key
from packwatch.models.registry import (
    ListMetadata,
    OfficialMeta,
    Package,
    ServerJSON,
    ServerListResponse,
    ServerResponse,
    Transport,
    split_server_name,
)

__all__ = [
    "ListMetadata",
    "OfficialMeta",
    "Package",
    "PackageEntry",
    "ServerJSON",
    "ServerListResponse",
    "ServerResponse",
    "StateKey",
    "Transport",
    "format_state_key",
    "parse_state_key",
    "split_server_name",
]
