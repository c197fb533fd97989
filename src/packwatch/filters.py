"""Eligibility filters applied to registry entries before dedup.

All functions here are pure. Allow-lists are expected to be normalised
(lower-cased, de-duplicated) by :mod:`packwatch.config`; an empty
allow-list admits everything.
"""

from __future__ import annotations

from collections.abc import Collection

from packwatch.models.entry import PackageEntry


def _allowed(value: str, allow_list: Collection[str]) -> bool:
    if not allow_list:
        return True
    needle = value.lower()
    return any(item.lower() == needle for item in allow_list)


def is_eligible(
    entry: PackageEntry,
    allowed_package_types: Collection[str],
    allowed_transport_types: Collection[str],
) -> bool:
    """Return True when both the package type and the transport type are allowed."""
    return _allowed(entry.package_type, allowed_package_types) and _allowed(
        entry.transport_type, allowed_transport_types
    )


def matches_server_name(entry: PackageEntry, names: Collection[str]) -> bool:
    """Return True when ``namespace/name`` is in *names* (exact match)."""
    if not names:
        return True
    return entry.full_name in names


def is_status_allowed(entry: PackageEntry, *, allow_deprecated: bool) -> bool:
    """Deleted servers are never eligible; deprecated ones only on request."""
    if entry.status == "deleted":
        return False
    if entry.status == "deprecated":
        return allow_deprecated
    return True
