"""
Conflict detection across every source of competing time claims.

A candidate interval is checked against the internal ledger, each connected
external calendar, and manual blocks / blackout dates. The sources are
queried concurrently and every match is reported, so callers see all reasons
at once.

Failure policy is fail-open: a source that raises or exceeds its timeout
contributes no conflict. The failure is logged, counted in
``failure_counts`` and named in ``ConflictResult.failed_sources``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from pendulum import DateTime

from ..adapters.calendar_adapter import CalendarConnection
from ..domain.exceptions import SourceUnavailable
from ..domain.models import (
    AvailabilityConfig,
    AvailabilityReport,
    AvailabilitySummary,
    CandidateSlot,
    Clock,
    CommitmentKind,
    ConflictResult,
    ConflictSource,
    TimeRange,
    utc_now,
)
from ..domain.slot_generator import SlotGenerator
from .availability_store import AvailabilityStore

logger = logging.getLogger(__name__)

INTERNAL_SOURCE = "internal"
BLOCKED_SOURCE = "blocked"

SourceOutcome = Tuple[str, Optional[List[ConflictSource]]]


class ConflictDetector:
    """
    Merges ledger, external calendar and blocked-time checks into one verdict.

    Detection only reads; it takes no locks and leaves nothing behind when
    abandoned.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        connections: Optional[Dict[str, Sequence[CalendarConnection]]] = None,
        *,
        adapter_timeout: float = 5.0,
        store_timeout: float = 5.0,
        slot_generator: Optional[SlotGenerator] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._connections: Dict[str, List[CalendarConnection]] = {
            provider_id: list(items) for provider_id, items in (connections or {}).items()
        }
        self.adapter_timeout = adapter_timeout
        self.store_timeout = store_timeout
        self._slot_generator = slot_generator or SlotGenerator()
        self._clock = clock
        self.failure_counts: Counter = Counter()

    def connect(self, provider_id: str, connection: CalendarConnection) -> None:
        """Register an external calendar for a provider."""
        self._connections.setdefault(provider_id, []).append(connection)

    def connections_for(self, provider_id: str) -> List[CalendarConnection]:
        return list(self._connections.get(provider_id, []))

    async def check(
        self,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str] = None,
    ) -> ConflictResult:
        """
        Check one interval against all sources.

        Args:
            provider_id: Provider whose time is requested
            candidate: Requested interval
            exclude_commitment_id: Commitment to ignore, e.g. the booking
                being rescheduled

        Returns:
            ConflictResult listing every overlapping reason
        """
        executor = ThreadPoolExecutor(thread_name_prefix="slotengine-source")
        try:
            outcomes, failed = await self._gather_sources(
                executor, provider_id, candidate, exclude_commitment_id
            )
        finally:
            # Timed-out workers finish in the background; nobody waits for them
            executor.shutdown(wait=False)

        result = ConflictResult(failed_sources=failed)
        for name, sources in outcomes:
            if sources is None:
                result.failed_sources.append(name)
            else:
                result.sources.extend(sources)

        if result.has_conflict:
            logger.debug(
                "Conflict for %s at %s: %s",
                provider_id,
                candidate,
                ", ".join(s.source for s in result.sources)
            )
        return result

    async def get_availability(
        self,
        provider_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> AvailabilityReport:
        """
        Generate slots for the range and re-check the open ones against all
        sources, including external calendars.

        ``summary.sources`` counts busy slots per reason: conflict source
        names, or the generator's ``min_advance`` / ``commitment`` marks.
        """
        snapshot = await asyncio.to_thread(self._store.snapshot, provider_id, range_start, range_end)
        slots = self._slot_generator.generate(snapshot, range_start, range_end, self._clock())

        open_slots = [slot for slot in slots if slot.available]
        results = await asyncio.gather(*(self.check(provider_id, slot.time_range) for slot in open_slots))
        verdicts = {slot.start: result for slot, result in zip(open_slots, results)}

        available: List[CandidateSlot] = []
        busy: List[CandidateSlot] = []
        reasons: Counter = Counter()

        for slot in slots:
            if not slot.available:
                busy.append(slot)
                reasons[slot.unavailable_reason or "unknown"] += 1
                continue

            result = verdicts[slot.start]
            if result.has_conflict:
                busy.append(slot)
                for name in sorted({source.source for source in result.sources}):
                    reasons[name] += 1
            else:
                available.append(slot)

        return AvailabilityReport(
            available_slots=available,
            busy_slots=busy,
            summary=AvailabilitySummary(
                total_slots=len(slots),
                available_slots=len(available),
                busy_slots=len(busy),
                sources=dict(reasons),
            ),
        )

    async def _gather_sources(
        self,
        executor: Executor,
        provider_id: str,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str],
    ) -> Tuple[List[SourceOutcome], List[str]]:
        config_outcome = await self._run_source(
            executor, "config", lambda: self._store.get_config(provider_id), self.store_timeout
        )
        failed: List[str] = []
        if config_outcome is None:
            failed.append("config")
            config = AvailabilityConfig()
        else:
            config = config_outcome

        # Commitments keep the buffer around them; ask calendars about the same span
        buffered = candidate.widen(config.buffer_minutes)
        imported_from: Set[str] = set()

        connections = self.connections_for(provider_id)
        jobs: List[Tuple[str, Callable[[], List[ConflictSource]], float]] = [
            (
                INTERNAL_SOURCE,
                lambda: self._internal_conflicts(
                    provider_id, config, candidate, exclude_commitment_id, imported_from
                ),
                self.store_timeout,
            ),
        ]
        for connection in connections:
            jobs.append((
                connection.name,
                self._calendar_job(connection, candidate, buffered),
                self.adapter_timeout,
            ))
        jobs.append((
            BLOCKED_SOURCE,
            lambda: self._blocked_conflicts(provider_id, config, candidate, exclude_commitment_id),
            self.store_timeout,
        ))

        outcomes = await asyncio.gather(
            *(self._named_source(executor, name, job, timeout) for name, job, timeout in jobs)
        )

        # An event already imported into the ledger is reported once, as internal
        calendar_names = {connection.name for connection in connections}
        deduplicated: List[SourceOutcome] = []
        for name, sources in outcomes:
            if sources and name in calendar_names and name in imported_from:
                logger.debug("Skipping %s placeholder; the event is already in the ledger", name)
                sources = []
            deduplicated.append((name, sources))
        return deduplicated, failed

    async def _named_source(
        self,
        executor: Executor,
        name: str,
        job: Callable[[], List[ConflictSource]],
        timeout: float,
    ) -> SourceOutcome:
        return name, await self._run_source(executor, name, job, timeout)

    async def _run_source(self, executor: Executor, name: str, job: Callable, timeout: float):
        """
        Run a blocking source query in a worker thread under a timeout.

        Returns None when the source failed; the caller treats that as
        "no conflict".
        """
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(executor, job), timeout=timeout)
        except asyncio.TimeoutError:
            error = SourceUnavailable(name, f"timed out after {timeout}s")
        except Exception as exc:
            error = SourceUnavailable(name, f"{type(exc).__name__}: {exc}")

        self.failure_counts[name] += 1
        logger.warning("%s; treating as no conflict", error)
        return None

    def _internal_conflicts(
        self,
        provider_id: str,
        config: AvailabilityConfig,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str],
        imported_from: Set[str],
    ) -> List[ConflictSource]:
        """
        Confirmed / in-progress bookings and imported external events.

        Calendar names of matching imported events are added to
        ``imported_from``.
        """
        buffered = candidate.widen(config.buffer_minutes)
        commitments = self._store.query_commitments(
            provider_id,
            start=buffered.start,
            end=buffered.end,
            kinds={CommitmentKind.BOOKING, CommitmentKind.EXTERNAL},
        )

        conflicts: List[ConflictSource] = []
        for commitment in commitments:
            if commitment.id == exclude_commitment_id or not commitment.blocks_time:
                continue
            if not commitment.time_range.widen(config.buffer_minutes).overlaps(candidate):
                continue

            description = None
            if commitment.kind == CommitmentKind.EXTERNAL:
                description = f"Imported from {commitment.source}"
                imported_from.add(commitment.source)

            conflicts.append(
                ConflictSource(
                    source=INTERNAL_SOURCE,
                    id=commitment.id,
                    title=commitment.title or "Booking",
                    start=commitment.start,
                    end=commitment.end,
                    description=description,
                )
            )
        return conflicts

    def _blocked_conflicts(
        self,
        provider_id: str,
        config: AvailabilityConfig,
        candidate: TimeRange,
        exclude_commitment_id: Optional[str],
    ) -> List[ConflictSource]:
        """Manual blocks (buffered like any commitment) and blackout days."""
        buffered = candidate.widen(config.buffer_minutes)
        blocks = self._store.query_commitments(
            provider_id,
            start=buffered.start,
            end=buffered.end,
            kinds={CommitmentKind.BLOCKED},
        )

        conflicts: List[ConflictSource] = [
            ConflictSource(
                source=BLOCKED_SOURCE,
                id=block.id,
                title="Blocked Time",
                start=block.start,
                end=block.end,
                description=block.description or block.title or None,
            )
            for block in blocks
            if block.id != exclude_commitment_id
            and block.blocks_time
            and block.time_range.widen(config.buffer_minutes).overlaps(candidate)
        ]

        for blackout, blocked_day in config.blackout_hits(candidate):
            conflicts.append(
                ConflictSource(
                    source=BLOCKED_SOURCE,
                    id=f"blackout_{blocked_day.start.format('YYYY-MM-DD')}",
                    title="Blocked Time",
                    start=blocked_day.start,
                    end=blocked_day.end,
                    description=blackout.reason,
                )
            )
        return conflicts

    @staticmethod
    def _calendar_job(
        connection: CalendarConnection,
        candidate: TimeRange,
        buffered: TimeRange,
    ) -> Callable[[], List[ConflictSource]]:
        def job() -> List[ConflictSource]:
            busy = connection.adapter.has_conflict(connection.credentials, buffered.start, buffered.end)
            if not busy:
                return []
            # Adapters only answer yes/no; report a placeholder so the reason is visible
            return [
                ConflictSource(
                    source=connection.name,
                    title=f"{connection.adapter.display_name} Calendar Event",
                    start=candidate.start,
                    end=candidate.end,
                    description="Busy in connected calendar",
                )
            ]

        return job
