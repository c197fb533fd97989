"""Package entries and their canonical state keys."""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packwatch.models._base import ensure_utc

# Characters each key component must not contain so that parsing is unambiguous.
_FORBIDDEN: dict[str, tuple[str, ...]] = {
    "namespace": ("/", "@"),
    "name": ("@",),
    "version": ("@", ":"),
    "package_type": (":", "@"),
    "transport_type": (":", "@"),
}


@dataclasses.dataclass(frozen=True, slots=True)
class StateKey:
    """Composite identity of a processed entry.

    Renders as ``namespace/name@version:packageType:transportType``. The
    separators are part of the persisted format, so every component is
    checked on construction to keep :meth:`parse` an exact inverse of
    :meth:`__str__`.
    """

    namespace: str
    name: str
    version: str
    package_type: str
    transport_type: str

    def __post_init__(self) -> None:
        for field_name, forbidden in _FORBIDDEN.items():
            value = getattr(self, field_name)
            if not value:
                raise ValueError(f"state key {field_name} must be non-empty")
            for char in forbidden:
                if char in value:
                    raise ValueError(f"state key {field_name} {value!r} must not contain {char!r}")

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}@{self.version}:{self.package_type}:{self.transport_type}"

    @property
    def full_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, key: str) -> StateKey:
        """Parse a key produced by :func:`format_state_key`.

        Raises :class:`ValueError` for anything that is not a well-formed key.
        """
        head, sep, version_and_types = key.rpartition("@")
        if not sep:
            raise ValueError(f"invalid state key {key!r}: missing '@'")
        parts = version_and_types.split(":")
        if len(parts) != 3:
            raise ValueError(f"invalid state key {key!r}: expected version:packageType:transportType")
        namespace, sep, name = head.partition("/")
        if not sep:
            raise ValueError(f"invalid state key {key!r}: missing '/'")
        version, package_type, transport_type = parts
        return cls(
            namespace=namespace,
            name=name,
            version=version,
            package_type=package_type,
            transport_type=transport_type,
        )


def format_state_key(
    namespace: str,
    name: str,
    version: str,
    package_type: str,
    transport_type: str,
) -> str:
    """Return the canonical key string for a 5-tuple."""
    return str(StateKey(namespace, name, version, package_type, transport_type))


def parse_state_key(key: str) -> StateKey:
    return StateKey.parse(key)


class PackageEntry(BaseModel):
    """One package/transport combination reported by the registry.

    Built fresh on every poll. The 5-tuple is the identity; ``updated_at``
    is the registry's last-modified instant and drives change detection.
    The remaining fields form the resolved descriptor handed to the pack
    generator.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str
    name: str
    version: str
    package_type: str
    transport_type: str
    updated_at: datetime | None = None
    """Registry last-modified time; ``None`` when the registry does not report one."""

    identifier: str = ""
    """Package identifier in its own ecosystem (npm name, OCI image, ...)."""
    package_version: str = ""
    description: str = ""
    status: str = "active"
    raw: dict[str, Any] = Field(default_factory=dict)
    """Original package JSON from the registry."""

    @field_validator("package_type", "transport_type", "status")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("updated_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def key(self) -> StateKey:
        return StateKey(self.namespace, self.name, self.version, self.package_type, self.transport_type)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}/{self.name}"
