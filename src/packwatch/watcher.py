"""Reconcile loop for the watch daemon.

One :class:`Watcher` owns the :class:`~packwatch.state.WatchState` for the
lifetime of the process. Each cycle walks ``polling → reconciling →
persisting`` and returns to ``idle``; a stop request moves it to
``shutting_down`` from any phase and ``run()`` ends in ``stopped``.
"""

from __future__ import annotations

import asyncio
import collections
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

from packwatch.config import WatchConfig
from packwatch.exceptions import (
    PackExistsError,
    PackGenerationError,
    RegistryError,
    StartupError,
    StateError,
    StatePersistenceError,
)
from packwatch.filters import is_eligible, is_status_allowed, matches_server_name
from packwatch.generator import GenerateOptions, PackGenerator
from packwatch.models.entry import PackageEntry
from packwatch.state.policy import needs_generation
from packwatch.state.store import WatchState, load_state, save_state

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntrySource(Protocol):
    """What the watcher needs from a registry client."""

    async def list_entries(self, *, names: tuple[str, ...] = ()) -> list[PackageEntry]:
        ...


class WatcherPhase(StrEnum):
    IDLE = "idle"
    POLLING = "polling"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass
class CycleReport:
    """Outcome of one poll cycle."""

    started_at: datetime
    fetched: int = 0
    eligible: int = 0
    pending: int = 0
    generated: int = 0
    failed: int = 0
    skipped: int = 0
    """Pending entries not attempted because a stop was requested."""
    fetch_failed: bool = False
    interrupted: bool = False
    persisted: bool = False
    failures: dict[str, str] = field(default_factory=dict)
    """State key → failure reason."""


class Watcher:
    """Polls the registry and generates packs for new or changed entries.

    Usage::

        watcher = Watcher(config, registry, FilesystemPackGenerator())
        watcher.prepare()
        await watcher.run()  # until request_stop()
    """

    def __init__(
        self,
        config: WatchConfig,
        registry: EntrySource,
        generator: PackGenerator,
        *,
        state: WatchState | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._registry = registry
        self._generator = generator
        self._state = state
        self._clock = clock
        self._stop = asyncio.Event()
        self._phase = WatcherPhase.IDLE
        self._options = GenerateOptions(
            output_dir=config.output_dir,
            output_type=config.output_type,
            force_overwrite=config.force_overwrite,
            dry_run=config.dry_run,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def phase(self) -> WatcherPhase:
        return self._phase

    @property
    def state(self) -> WatchState:
        return self._require_state()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to shut down after the generations in flight."""
        if not self._stop.is_set():
            _logger.info("Shutdown requested, stopping watch loop")
        self._stop.set()

    def prepare(self) -> WatchState:
        """Create working directories and load persisted state.

        Raises :class:`StartupError` when a directory cannot be created or
        the state file cannot be read.
        """
        if not self._config.dry_run:
            for directory in (self._config.output_dir, self._config.state_file.parent):
                try:
                    directory.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise StartupError(f"cannot create directory {directory}: {exc}") from exc
        try:
            self._state = load_state(self._config.state_file, quarantine=not self._config.dry_run)
        except StateError as exc:
            raise StartupError(str(exc)) from exc
        return self._state

    def _require_state(self) -> WatchState:
        if self._state is None:
            raise StartupError("Watcher not prepared. Call prepare() before polling.")
        return self._state

    def _set_phase(self, phase: WatcherPhase) -> None:
        if phase != self._phase:
            _logger.debug("Watcher phase %s -> %s", self._phase, phase)
            self._phase = phase

    async def run(self) -> None:
        """Poll immediately, then every ``poll_interval`` seconds until stopped.

        The interval is measured from the start of each cycle; a cycle that
        overruns it is followed immediately by the next one.

        Returns normally after a stop request. Task cancellation persists
        accumulated state and propagates.
        """
        if self._state is None:
            self.prepare()

        config = self._config
        _logger.info(
            "Starting watch mode (interval=%ss, state=%s, package_types=%s, transport_types=%s, dry_run=%s)",
            config.poll_interval,
            config.state_file,
            ",".join(config.filter_package_types) or "all",
            ",".join(config.filter_transport_types) or "all",
            config.dry_run,
        )
        try:
            while not self._stop.is_set():
                report = await self.poll_once()
                if self._stop.is_set():
                    break
                self._set_phase(WatcherPhase.IDLE)
                elapsed = (self._clock() - report.started_at).total_seconds()
                if await self._wait_for_stop(max(0.0, config.poll_interval - elapsed)):
                    break
            self._set_phase(WatcherPhase.SHUTTING_DOWN)
        finally:
            self._set_phase(WatcherPhase.STOPPED)
        _logger.info("Watch mode stopped")

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def poll_once(self) -> CycleReport:
        """Run one polling → reconciling → persisting cycle."""
        state = self._require_state()
        report = CycleReport(started_at=self._clock())
        started = time.monotonic()

        self._set_phase(WatcherPhase.POLLING)
        _logger.info("Starting poll cycle")
        try:
            entries = await self._fetch()
        except RegistryError as exc:
            report.fetch_failed = True
            _logger.error("Registry fetch failed, retrying next cycle: %s", exc)
            self._set_phase(WatcherPhase.IDLE)
            return report
        except Exception:
            report.fetch_failed = True
            _logger.exception("Unexpected error fetching registry, retrying next cycle")
            self._set_phase(WatcherPhase.IDLE)
            return report
        if entries is None:
            report.interrupted = True
            self._set_phase(WatcherPhase.SHUTTING_DOWN)
            return report

        report.fetched = len(entries)
        _logger.info("Fetched %d entries from registry", len(entries))

        self._set_phase(WatcherPhase.RECONCILING)
        pending = self._select(entries, state, report)
        try:
            await self._reconcile(pending, state, report)
        except asyncio.CancelledError:
            report.interrupted = True
            self._persist(state, report)
            raise

        self._persist(state, report)

        _logger.info(
            "Poll cycle completed in %.1fs (%d eligible, %d pending, %d generated, %d failed, %d skipped)",
            time.monotonic() - started,
            report.eligible,
            report.pending,
            report.generated,
            report.failed,
            report.skipped,
        )
        if report.interrupted:
            self._set_phase(WatcherPhase.SHUTTING_DOWN)
        return report

    async def _fetch(self) -> list[PackageEntry] | None:
        """List entries, or return ``None`` if a stop request wins the race."""
        fetch = asyncio.ensure_future(self._registry.list_entries(names=self._config.filter_server_names))
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait({fetch, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (fetch, stopper):
                if not task.done():
                    task.cancel()

        if stopper in done:
            _logger.info("Registry fetch abandoned for shutdown")
            # Let the cancelled fetch unwind.
            await asyncio.gather(fetch, return_exceptions=True)
            return None
        return fetch.result()

    def _select(self, entries: list[PackageEntry], state: WatchState, report: CycleReport) -> list[PackageEntry]:
        """Filter and dedup *entries*; return pending ones sorted by state key."""
        config = self._config
        seen: set[str] = set()
        pending: dict[str, PackageEntry] = {}
        for entry in entries:
            try:
                key = str(entry.key)
            except ValueError as exc:
                _logger.warning("Skipping %s@%s: %s", entry.full_name, entry.version, exc)
                continue
            if not matches_server_name(entry, config.filter_server_names):
                _logger.debug("Skipping %s: not in server name filter", key)
                continue
            if not is_status_allowed(entry, allow_deprecated=config.allow_deprecated):
                _logger.debug("Skipping %s: server status is %s", key, entry.status)
                continue
            if not is_eligible(entry, config.filter_package_types, config.filter_transport_types):
                _logger.debug("Skipping %s: package or transport type filtered out", key)
                continue
            if key in seen:
                _logger.debug("Skipping %s: duplicate registry entry", key)
                continue
            seen.add(key)
            report.eligible += 1

            if needs_generation(state.get(key), entry, force_overwrite=config.force_overwrite):
                pending[key] = entry
            else:
                _logger.debug("Skipping %s: already generated and unchanged", key)

        report.pending = len(pending)
        return [pending[key] for key in sorted(pending)]

    async def _reconcile(self, pending: list[PackageEntry], state: WatchState, report: CycleReport) -> None:
        if not pending:
            _logger.debug("No packs need generation")
            return
        _logger.info("%d packs need generation", len(pending))

        if self._config.dry_run:
            for entry in pending:
                _logger.info("Dry run: would generate pack for %s", entry.key)
            return

        queue = collections.deque(pending)

        async def _worker() -> None:
            while queue and not self._stop.is_set():
                await self._generate_one(queue.popleft(), state, report)

        workers = min(self._config.max_concurrent, len(pending))
        await asyncio.gather(*(_worker() for _ in range(workers)))

        if queue:
            report.skipped = len(queue)
            report.interrupted = True
            _logger.info("Shutdown: %d pending packs left for a later run", len(queue))

    async def _generate_one(self, entry: PackageEntry, state: WatchState, report: CycleReport) -> None:
        key = str(entry.key)
        _logger.info("Generating pack for %s", key)
        try:
            await self._generator.generate(entry, self._options)
        except PackExistsError as exc:
            report.failed += 1
            report.failures[key] = str(exc)
            _logger.warning("Pack for %s not generated: %s", key, exc)
            return
        except PackGenerationError as exc:
            report.failed += 1
            report.failures[key] = str(exc)
            _logger.error("Pack generation failed for %s: %s", key, exc)
            return
        except Exception as exc:
            report.failed += 1
            report.failures[key] = repr(exc)
            _logger.exception("Unexpected error generating pack for %s", key)
            return

        state.record_generated(entry, self._clock())
        report.generated += 1
        _logger.info("Pack generated for %s", key)

    def _persist(self, state: WatchState, report: CycleReport) -> None:
        """Advance ``last_poll`` (complete cycles only) and write the state file.

        Dry runs never write. A failed write is logged loudly; the next
        cycle retries with everything accumulated in memory.
        """
        self._set_phase(WatcherPhase.PERSISTING)
        if not report.interrupted:
            state.advance_last_poll(self._clock())
        if self._config.dry_run:
            _logger.debug("Dry run: state file not written")
            return
        try:
            save_state(self._config.state_file, state)
        except StatePersistenceError as exc:
            _logger.error("Failed to persist watch state: %s", exc)
            return
        report.persisted = True
