"""Internal constants shared across the package."""

DEFAULT_REGISTRY_URL = "https://registry.modelcontextprotocol.io"
USER_AGENT = "packwatch/0.1"
SERVERS_ENDPOINT = "/v0/servers"
OFFICIAL_META_KEY = "io.modelcontextprotocol.registry/official"

#: Registry caps page size at 100.
MAX_PAGE_LIMIT = 100

VALID_PACKAGE_TYPES: tuple[str, ...] = ("npm", "pypi", "oci", "nuget")
VALID_TRANSPORT_TYPES: tuple[str, ...] = ("stdio", "http", "sse")
VALID_OUTPUT_TYPES: tuple[str, ...] = ("packdir", "archive")
VALID_LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error")

#: Seconds.
MIN_POLL_INTERVAL = 30
DEFAULT_POLL_INTERVAL = 300
MIN_MAX_CONCURRENT = 1

# ------------------------------------------------------------------
# Transport type names  (registry → user-facing)
# ------------------------------------------------------------------

_REGISTRY_TO_USER_TRANSPORT: dict[str, str] = {
    "stdio": "stdio",
    "streamable-http": "http",
    "sse": "sse",
}


def transport_from_registry(registry_type: str) -> str:
    """Map a registry transport name (e.g. ``streamable-http``) to its short form.

    Unknown names are passed through lower-cased.
    """
    normalized = registry_type.strip().lower()
    return _REGISTRY_TO_USER_TRANSPORT.get(normalized, normalized)
