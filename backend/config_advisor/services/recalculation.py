"""Debounced, single-flight recalculation of ticket recommendations."""

from __future__ import annotations

import asyncio
import inspect
import logging
from threading import Event, Lock
from typing import Any, Callable

from config_advisor.core.config import settings
from config_advisor.core.exceptions import CollaboratorFailure
from config_advisor.models.enums import RecommendationImpact, RecommendationType, TicketRecalcState
from config_advisor.schemas.changes import ChangeSet
from config_advisor.schemas.patterns import OrgPatterns
from config_advisor.schemas.recommendation import (
    ConfidenceSummary,
    Conflict,
    RecalculationContext,
    RecalculationHistoryEntry,
    RecalculationResult,
    Recommendation,
    RecommendationChanges,
    clamp,
)
from config_advisor.services.analytics import RecommendationAnalytics
from config_advisor.services.broadcaster import UpdateBroadcaster
from config_advisor.services.conflicts import ConflictDetector, conflict_to_recommendation
from config_advisor.services.engine import RecommendationEngine
from config_advisor.services.patterns import PatternAnalyzer, dominant_naming_convention
from config_advisor.services.store import RecommendationStore

logger = logging.getLogger(__name__)

Listener = Callable[[RecalculationResult], Any]

RUN_NOW_POLL_SECONDS = 0.05


def is_significant_change(changes: ChangeSet) -> bool:
    return changes.has_object_creation() or changes.has_field_type_modification() or changes.has_relationship_changes()


def pattern_consistency(patterns: OrgPatterns) -> float:
    means: list[float] = []
    for bucket in (patterns.naming_patterns, patterns.field_type_patterns):
        if bucket:
            means.append(sum(p.confidence for p in bucket) / len(bucket))
    return sum(means) / len(means) if means else 0.5


def change_complexity(changes: ChangeSet) -> float:
    weighted = (
        len(changes.objects) * 0.3
        + len(changes.fields) * 0.2
        + len(changes.relationships) * 0.3
        + len(changes.all_validation_rules) * 0.2
    )
    return min(weighted / 10, 1.0)


def aggregate_confidence(
    recommendations: list[Recommendation],
    patterns: OrgPatterns,
    changes: ChangeSet,
) -> ConfidenceSummary:
    factors: list[str] = []
    total = 0.0
    weights = 0.0

    consistency = pattern_consistency(patterns)
    if consistency > 0.8:
        factors.append("Strong org patterns detected")
        total, weights = total + consistency * 2, weights + 2
    elif consistency > 0.5:
        factors.append("Moderate org patterns detected")
        total, weights = total + consistency, weights + 1
    else:
        factors.append("Weak org patterns")
        total, weights = total + consistency * 0.5, weights + 0.5

    mean_confidence = sum(r.confidence for r in recommendations) / max(len(recommendations), 1)
    if mean_confidence > 0.8:
        factors.append("High recommendation confidence")
    elif mean_confidence > 0.6:
        factors.append("Moderate recommendation confidence")
    else:
        factors.append("Low recommendation confidence")
    total, weights = total + mean_confidence, weights + 1

    critical = sum(
        1 for r in recommendations if r.type == RecommendationType.conflict and r.impact == RecommendationImpact.high
    )
    if critical == 0:
        factors.append("No critical conflicts")
        total += 1.0
    elif critical <= 2:
        factors.append(f"{critical} critical conflict(s)")
        total += 0.5
    else:
        factors.append(f"{critical} critical conflicts detected")
        total += 0.2
    weights += 1

    complexity = change_complexity(changes)
    if complexity < 0.3:
        factors.append("Simple changes")
        total += 0.9
    elif complexity < 0.6:
        factors.append("Moderate complexity")
        total += 0.6
    else:
        factors.append("Complex changes")
        total += 0.3
    weights += 0.5

    return ConfidenceSummary(overall=clamp(total / weights), factors=factors)


def diff_recommendations(previous: list[Recommendation], current: list[Recommendation]) -> RecommendationChanges:
    before = {r.id: r for r in previous}
    after = {r.id: r for r in current}
    return RecommendationChanges(
        added=[r for r in current if r.id not in before],
        removed=[r for r in previous if r.id not in after],
        modified=[
            r
            for r in current
            if r.id in before
            and (
                before[r.id].confidence != r.confidence
                or before[r.id].description != r.description
                or before[r.id].impact != r.impact
            )
        ],
    )


def _unique_by_id(recommendations: list[Recommendation]) -> list[Recommendation]:
    seen: set[str] = set()
    unique: list[Recommendation] = []
    for rec in recommendations:
        if rec.id in seen:
            continue
        seen.add(rec.id)
        unique.append(rec)
    return unique


class RecalculationCoordinator:
    def __init__(
        self,
        *,
        analyzer: PatternAnalyzer,
        engine: RecommendationEngine,
        detector: ConflictDetector,
        store: RecommendationStore,
        broadcaster: UpdateBroadcaster | None = None,
        analytics: RecommendationAnalytics | None = None,
        tick_seconds: float | None = None,
        cycle_timeout_seconds: float | None = None,
    ) -> None:
        self.analyzer = analyzer
        self.engine = engine
        self.detector = detector
        self.store = store
        self.broadcaster = broadcaster
        self.analytics = analytics
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.RECALC_TICK_SECONDS
        self.cycle_timeout_seconds = (
            cycle_timeout_seconds if cycle_timeout_seconds is not None else settings.RECALC_CYCLE_TIMEOUT_SECONDS
        )

        self._pending: dict[str, RecalculationContext] = {}
        self._processing: set[str] = set()
        self._last_errors: dict[str, str] = {}
        self._listeners: list[Listener] = []
        self._lock = Lock()
        self._busy = False
        self._wake = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None

    # ----- queue -----

    def queue_recalculation(self, context: RecalculationContext) -> None:
        with self._lock:
            replaced = context.ticket_id in self._pending
            self._pending[context.ticket_id] = context
        logger.debug(
            "Queued recalculation ticket=%s trigger=%s replaced=%s",
            context.ticket_id,
            context.trigger_type.value,
            replaced,
        )
        self._signal()

    def _signal(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._wake.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._wake.set()
        else:
            loop.call_soon_threadsafe(self._wake.set)

    def state(self, ticket_id: str) -> TicketRecalcState:
        with self._lock:
            if ticket_id in self._processing:
                return TicketRecalcState.processing
            if ticket_id in self._pending:
                return TicketRecalcState.queued
        return TicketRecalcState.idle

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def last_error(self, ticket_id: str) -> str | None:
        with self._lock:
            return self._last_errors.get(ticket_id)

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ----- processing -----

    async def process_pending(self) -> list[RecalculationResult]:
        if self._busy:
            return []
        self._busy = True
        try:
            with self._lock:
                ready = [ticket_id for ticket_id in self._pending if ticket_id not in self._processing]
                batch = [self._pending.pop(ticket_id) for ticket_id in ready]
                self._processing.update(ctx.ticket_id for ctx in batch)
            if not batch:
                return []
            outcomes = await asyncio.gather(*(self._run_cycle(ctx) for ctx in batch))
            return [result for result in outcomes if result is not None]
        finally:
            self._busy = False

    async def _run_cycle(self, context: RecalculationContext) -> RecalculationResult | None:
        ticket_id = context.ticket_id
        try:
            result = await asyncio.wait_for(self.recalculate(context), timeout=self.cycle_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Recalculation for ticket %s timed out after %ss", ticket_id, self.cycle_timeout_seconds)
            with self._lock:
                self._last_errors[ticket_id] = f"Recalculation timed out after {self.cycle_timeout_seconds}s"
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("Recalculation failed for ticket %s", ticket_id)
            with self._lock:
                self._last_errors[ticket_id] = str(exc) or exc.__class__.__name__
            return None
        finally:
            with self._lock:
                self._processing.discard(ticket_id)
        with self._lock:
            self._last_errors.pop(ticket_id, None)
        return result

    async def run_now(self, context: RecalculationContext) -> RecalculationResult:
        """Run one cycle for a caller that waits on it; errors propagate instead of being recorded only."""
        ticket_id = context.ticket_id
        while True:
            with self._lock:
                if ticket_id not in self._processing:
                    self._processing.add(ticket_id)
                    break
            await asyncio.sleep(RUN_NOW_POLL_SECONDS)
        try:
            result = await asyncio.wait_for(self.recalculate(context), timeout=self.cycle_timeout_seconds)
        except asyncio.TimeoutError as exc:
            message = f"Recalculation timed out after {self.cycle_timeout_seconds}s"
            with self._lock:
                self._last_errors[ticket_id] = message
            raise CollaboratorFailure(message, details={"ticket_id": ticket_id}) from exc
        except Exception as exc:
            with self._lock:
                self._last_errors[ticket_id] = str(exc) or exc.__class__.__name__
            raise
        finally:
            with self._lock:
                self._processing.discard(ticket_id)
        with self._lock:
            self._last_errors.pop(ticket_id, None)
        return result

    async def recalculate(self, context: RecalculationContext) -> RecalculationResult:
        # Worker threads cannot be cancelled; a cycle that times out flags the
        # pending save so the store rolls it back instead of committing late.
        abandoned = Event()
        try:
            return await self._recalculate(context, abandoned)
        except asyncio.CancelledError:
            abandoned.set()
            logger.warning("Recalculation for ticket %s cancelled; discarding its pending save", context.ticket_id)
            raise

    async def _recalculate(self, context: RecalculationContext, abandoned: Event) -> RecalculationResult:
        ticket_id, org_id = context.ticket_id, context.org_id
        changes = ChangeSet.from_payload(context.proposed_changes)

        patterns, reanalyzed = await self._resolve_patterns(context, changes)
        recommendations = await asyncio.to_thread(
            self.engine.generate_recommendations, ticket_id, org_id, context.proposed_changes, patterns
        )
        conflicts = await asyncio.to_thread(
            self.detector.detect_conflicts,
            org_id,
            changes,
            None,
            naming_convention=dominant_naming_convention(patterns),
        )
        combined = _unique_by_id([*recommendations, *(conflict_to_recommendation(c) for c in conflicts)])
        confidence = aggregate_confidence(combined, patterns, changes)

        previous = context.previous_recommendations
        if previous is None:
            previous = await asyncio.to_thread(self.store.get_recommendations, ticket_id)
        diff = diff_recommendations(previous, combined)

        await asyncio.to_thread(self._persist, context, combined, diff, confidence, abandoned)
        if self.analytics is not None:
            self.analytics.invalidate_recommendations(ticket_id)

        result = RecalculationResult(
            ticket_id=ticket_id,
            recommendations=combined,
            changes=diff,
            confidence=confidence,
            patterns_reanalyzed=reanalyzed,
            conflict_count=len(conflicts),
        )
        logger.info(
            "Recalculated ticket=%s added=%d removed=%d modified=%d confidence=%.2f reanalyzed=%s",
            ticket_id,
            len(diff.added),
            len(diff.removed),
            len(diff.modified),
            confidence.overall,
            reanalyzed,
        )
        await self._publish(context, result, patterns, conflicts)
        return result

    async def _resolve_patterns(self, context: RecalculationContext, changes: ChangeSet) -> tuple[OrgPatterns, bool]:
        if not is_significant_change(changes):
            stored = await asyncio.to_thread(self.store.get_latest_patterns, context.ticket_id)
            if stored is not None:
                return stored, False
        patterns = await asyncio.to_thread(self.analyzer.analyze_org_patterns, context.org_id, context.ticket_id)
        return patterns, True

    def _persist(
        self,
        context: RecalculationContext,
        recommendations: list[Recommendation],
        diff: RecommendationChanges,
        confidence: ConfidenceSummary,
        abandoned: Event,
    ) -> None:
        saved = self.store.save_recalculation(
            context.ticket_id,
            context.org_id,
            recommendations,
            RecalculationHistoryEntry(
                ticket_id=context.ticket_id,
                trigger_type=context.trigger_type,
                added_count=len(diff.added),
                removed_count=len(diff.removed),
                modified_count=len(diff.modified),
                overall_confidence=confidence.overall,
            ),
            should_abort=abandoned.is_set,
        )
        if not saved:
            logger.info("Skipped saving abandoned recalculation for ticket %s", context.ticket_id)

    async def _publish(
        self,
        context: RecalculationContext,
        result: RecalculationResult,
        patterns: OrgPatterns,
        conflicts: list[Conflict],
    ) -> None:
        if self.broadcaster is not None:
            await self.broadcaster.broadcast_recommendation_update(context.ticket_id, result.recommendations)
            await self.broadcaster.broadcast_confidence_update(
                context.ticket_id, None, result.confidence.overall, result.confidence.factors
            )
            if conflicts:
                await self.broadcaster.broadcast_conflict_detected(context.ticket_id, conflicts, conflicts[0].severity)
            if result.patterns_reanalyzed:
                await self.broadcaster.broadcast_pattern_update(context.org_id, patterns, [context.ticket_id])

        for listener in list(self._listeners):
            try:
                outcome = listener(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:  # noqa: BLE001
                logger.exception("Recalculation listener failed for ticket %s", context.ticket_id)

    # ----- background loop -----

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        while stop_event is None or not stop_event.is_set():
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            try:
                await self.process_pending()
            except Exception:  # noqa: BLE001
                logger.exception("Recalculation pass failed")

    async def start(self) -> None:
        if self._task is not None:
            return
        if not settings.RECALC_ENABLED:
            logger.info("Recalculation loop disabled")
            return
        self._task = asyncio.create_task(self.run(), name="recommendation-recalculation")
        logger.info("Recalculation loop started (tick every %s seconds)", self.tick_seconds)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._loop = None
