"""Pack generation.

The watcher only depends on the :class:`PackGenerator` protocol. The
bundled :class:`FilesystemPackGenerator` writes a descriptor-only pack
(``pack.json`` plus a ``README.md``) either as a directory or as a zip
archive; richer template rendering plugs in behind the same protocol.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import re
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Protocol

from packwatch.exceptions import PackExistsError, PackGenerationError
from packwatch.models.entry import PackageEntry

_logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


@dataclasses.dataclass(frozen=True)
class GenerateOptions:
    output_dir: Path
    output_type: str = "packdir"
    force_overwrite: bool = False
    dry_run: bool = False


class PackGenerator(Protocol):
    """Produces a pack for one entry.

    Implementations raise :class:`PackGenerationError` (or a subclass) for
    every failure and return the path of the produced pack, or ``None`` in
    dry-run mode.
    """

    async def generate(self, entry: PackageEntry, options: GenerateOptions) -> Path | None:
        ...


def compute_pack_name(entry: PackageEntry) -> str:
    """Filesystem-safe pack name, e.g. ``io-github-acme-weather-1-2-0-npm-stdio``."""
    server = _UNSAFE_CHARS.sub("", entry.full_name.replace("/", "-").replace(".", "-"))
    version = entry.version.replace(".", "-")
    return f"{server}-{version}-{entry.package_type}-{entry.transport_type}"


def _render_readme(entry: PackageEntry) -> str:
    lines = [
        f"# {entry.full_name}",
        "",
        entry.description or "No description provided.",
        "",
        f"- Version: {entry.version}",
        f"- Package: {entry.identifier or '-'} ({entry.package_type})",
        f"- Transport: {entry.transport_type}",
        "",
    ]
    return "\n".join(lines)


def _write_pack_files(pack_dir: Path, entry: PackageEntry) -> None:
    pack_dir.mkdir(parents=True, exist_ok=True)
    descriptor = entry.model_dump(mode="json")
    descriptor["key"] = str(entry.key)
    (pack_dir / "pack.json").write_text(json.dumps(descriptor, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    (pack_dir / "README.md").write_text(_render_readme(entry), encoding="utf-8")


def _write_packdir(entry: PackageEntry, target: Path, force: bool) -> None:
    # Build next to the target so the final rename never crosses filesystems.
    staging = Path(tempfile.mkdtemp(prefix=f".{target.name}.", dir=str(target.parent)))
    try:
        _write_pack_files(staging, entry)
        if target.exists():
            if not force:
                raise PackExistsError(f"pack directory {target} already exists", key=str(entry.key))
            shutil.rmtree(target)
        staging.rename(target)
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)


def _write_archive(entry: PackageEntry, target: Path, force: bool) -> None:
    pack_name = target.name.removesuffix(".zip")
    with tempfile.TemporaryDirectory(prefix="packwatch-") as tmp:
        pack_dir = Path(tmp) / pack_name
        _write_pack_files(pack_dir, entry)
        staging = target.with_name(f".{target.name}.tmp")
        try:
            with zipfile.ZipFile(staging, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for path in sorted(pack_dir.rglob("*")):
                    archive.write(path, path.relative_to(pack_dir.parent).as_posix())
            if target.exists() and not force:
                raise PackExistsError(f"pack archive {target} already exists", key=str(entry.key))
            staging.replace(target)
        finally:
            staging.unlink(missing_ok=True)


class FilesystemPackGenerator:
    """Writes packs under ``options.output_dir``."""

    async def generate(self, entry: PackageEntry, options: GenerateOptions) -> Path | None:
        key = str(entry.key)
        pack_name = compute_pack_name(entry)
        if options.output_type == "archive":
            target = options.output_dir / f"{pack_name}.zip"
            writer = _write_archive
            kind = "archive"
        else:
            target = options.output_dir / pack_name
            writer = _write_packdir
            kind = "directory"

        if options.dry_run:
            _logger.info("Would create pack %s %s for %s", kind, target, key)
            return None

        if target.exists() and not options.force_overwrite:
            raise PackExistsError(f"pack {kind} {target} already exists (use force-overwrite)", key=key)

        try:
            await asyncio.to_thread(writer, entry, target, options.force_overwrite)
        except PackGenerationError:
            raise
        except OSError as exc:
            raise PackGenerationError(f"failed to write pack {kind} {target}: {exc}", key=key) from exc

        _logger.info("Pack %s created: %s", kind, target)
        return target
