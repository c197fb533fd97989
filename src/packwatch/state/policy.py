"""Dedup policy: decide whether an entry needs a (re)generation."""

from __future__ import annotations

from packwatch.models.entry import PackageEntry
from packwatch.state.store import ServerState


def needs_generation(
    existing: ServerState | None,
    entry: PackageEntry,
    *,
    force_overwrite: bool = False,
) -> bool:
    """Return True when *entry* must be (re)generated.

    Policy:
    - force-overwrite always regenerates.
    - Unknown keys, and keys whose last generation never succeeded, generate.
    - Known keys regenerate only when the registry reports a strictly newer
      ``updated_at`` than the one recorded. A missing incoming timestamp
      counts as unchanged.
    """
    if force_overwrite:
        return True
    if existing is None or existing.generated_at is None:
        return True
    if entry.updated_at is None:
        return False
    if existing.updated_at is None:
        return True
    return entry.updated_at > existing.updated_at
