"""Registry ``/v0/servers`` response models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from packwatch._constants import OFFICIAL_META_KEY, transport_from_registry
from packwatch.models._base import OptionalTimestamp, RegistryBaseModel
from packwatch.models.entry import PackageEntry


def split_server_name(full_name: str) -> tuple[str, str]:
    """Split ``namespace/name`` into its parts.

    Raises :class:`ValueError` when either part is missing.
    """
    namespace, sep, name = full_name.strip().partition("/")
    if not sep or not namespace or not name:
        raise ValueError(f"server name {full_name!r} must be in the form namespace/name")
    return namespace, name


class Transport(RegistryBaseModel):
    type: str = ""
    url: str | None = None


class Package(RegistryBaseModel):
    """A runnable distribution of a server (npm package, OCI image, ...)."""

    registry_type: str = ""
    identifier: str = ""
    version: str = ""
    runtime_hint: str | None = None
    transport: Transport = Field(default_factory=Transport)
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if isinstance(values, dict) and "raw" not in values:
            return {**values, "raw": dict(values)}
        return values


class ServerJSON(RegistryBaseModel):
    name: str
    version: str = ""
    description: str = ""
    packages: list[Package] = Field(default_factory=list)


class OfficialMeta(RegistryBaseModel):
    """Registry-maintained metadata under ``_meta["io.modelcontextprotocol.registry/official"]``."""

    status: str = "active"
    published_at: OptionalTimestamp = None
    updated_at: OptionalTimestamp = None
    is_latest: bool = False


class ServerResponse(RegistryBaseModel):
    server: ServerJSON
    official: OfficialMeta = Field(default_factory=OfficialMeta)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, values: Any) -> Any:
        """Accept both the wrapped (``{"server": ..., "_meta": ...}``) and the legacy flat shape."""
        if not isinstance(values, dict):
            return values
        if "server" in values:
            server = values["server"]
            meta = values.get("_meta")
        else:
            server = values
            meta = values.get("_meta")
        official: Any = {}
        if isinstance(meta, dict):
            official = meta.get(OFFICIAL_META_KEY) or {}
        return {"server": server, "official": official}

    def to_entries(self) -> list[PackageEntry]:
        """Expand the server into one entry per package.

        Remote-only servers (no packages) yield nothing. Raises
        :class:`ValueError` if the server name is malformed.
        """
        namespace, name = split_server_name(self.server.name)
        entries: list[PackageEntry] = []
        for package in self.server.packages:
            entries.append(
                PackageEntry(
                    namespace=namespace,
                    name=name,
                    version=self.server.version,
                    package_type=package.registry_type,
                    transport_type=transport_from_registry(package.transport.type or "stdio"),
                    updated_at=self.official.updated_at or self.official.published_at,
                    identifier=package.identifier,
                    package_version=package.version,
                    description=self.server.description,
                    status=self.official.status or "active",
                    raw=package.raw,
                )
            )
        return entries


class ListMetadata(RegistryBaseModel):
    next_cursor: str | None = None
    count: int | None = None


class ServerListResponse(RegistryBaseModel):
    servers: list[ServerResponse] = Field(default_factory=list)
    metadata: ListMetadata = Field(default_factory=ListMetadata)
