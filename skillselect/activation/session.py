"""Activation session manager.

Owns the published ActivationSet. Writers are serialized through a lock;
readers always see the last published set without blocking. Each
evaluation cycle holds a CycleToken; a newer context invalidates older
tokens, and a stale cycle is stopped at its next checkpoint so its result
is never published.

Usage:
    session = ActivationSessionManager()
    cycle = session.begin_cycle()
    try:
        ...  # extract, score, resolve, select; call cycle.checkpoint() between stages
        diff = session.reconcile(selection.selected, cycle)
    finally:
        session.finish_cycle(cycle)
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional

from ..observability import metrics
from ..skills.errors import EvaluationSuperseded
from ..skills.scorer import ScoredCandidate

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    RECONCILING = "reconciling"


@dataclass(frozen=True)
class ActivationEntry:
    """One active skill."""

    skill_id: str
    score: float
    activated_at: datetime
    size_estimate: int = 0


@dataclass(frozen=True)
class ActivationSet:
    """Immutable, ordered set of active skills."""

    entries: tuple[ActivationEntry, ...] = ()
    version: int = 0

    @property
    def skill_ids(self) -> list[str]:
        return [e.skill_id for e in self.entries]

    @property
    def total_size(self) -> int:
        return sum(e.size_estimate for e in self.entries)

    def get(self, skill_id: str) -> Optional[ActivationEntry]:
        for entry in self.entries:
            if entry.skill_id == skill_id:
                return entry
        return None

    def __contains__(self, skill_id: object) -> bool:
        return any(e.skill_id == skill_id for e in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ActivationEntry]:
        return iter(self.entries)


@dataclass(frozen=True)
class ActivationDiff:
    """Membership changes produced by one reconcile."""

    activated: tuple[ActivationEntry, ...] = ()
    deactivated: tuple[ActivationEntry, ...] = ()
    unchanged: tuple[ActivationEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when membership did not change."""
        return not self.activated and not self.deactivated

    def to_dict(self) -> dict:
        def ids(entries):
            return [{"skill_id": e.skill_id, "score": round(e.score, 6)} for e in entries]

        return {
            "activated": ids(self.activated),
            "deactivated": ids(self.deactivated),
            "unchanged": ids(self.unchanged),
        }


@dataclass
class CycleToken:
    """Handle for one evaluation cycle."""

    cycle_id: int
    generation: int
    _session: "ActivationSessionManager" = field(repr=False)

    @property
    def superseded(self) -> bool:
        return self._session.generation != self.generation

    def checkpoint(self) -> None:
        """Raise EvaluationSuperseded if a newer context has arrived."""
        latest = self._session.generation
        if latest != self.generation:
            raise EvaluationSuperseded(self.cycle_id, latest)


DiffListener = Callable[[ActivationDiff], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActivationSessionManager:
    """Single writer of the ActivationSet."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._published = ActivationSet()
        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._phase = SessionPhase.IDLE
        self._generation = 0
        self._cycle_counter = 0
        self._active_cycle: Optional[int] = None
        self._listeners: list[DiffListener] = []

    @property
    def current(self) -> ActivationSet:
        """The last published activation set."""
        return self._published

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: DiffListener) -> None:
        """Register a callable that receives every non-empty diff."""
        self._listeners.append(listener)

    def invalidate(self) -> int:
        """Mark every in-flight cycle as superseded."""
        with self._state_lock:
            self._generation += 1
            return self._generation

    def begin_cycle(self) -> CycleToken:
        """Start an evaluation cycle against the current generation."""
        with self._state_lock:
            self._cycle_counter += 1
            self._active_cycle = self._cycle_counter
            self._phase = SessionPhase.EVALUATING
            return CycleToken(self._cycle_counter, self._generation, self)

    def finish_cycle(self, cycle: CycleToken) -> None:
        """Return to Idle unless a newer cycle has already started."""
        with self._state_lock:
            if self._active_cycle == cycle.cycle_id:
                self._active_cycle = None
                self._phase = SessionPhase.IDLE

    def reconcile(
        self,
        selection: Iterable[ScoredCandidate],
        cycle: Optional[CycleToken] = None,
    ) -> ActivationDiff:
        """Diff a new selection against the published set and publish it.

        Only real membership changes appear as activated/deactivated;
        members present before and after are reported as unchanged and keep
        their original activation time.

        Raises:
            EvaluationSuperseded: If ``cycle`` was superseded; nothing is published
        """
        with self._write_lock:
            if cycle is not None:
                cycle.checkpoint()
                with self._state_lock:
                    if self._active_cycle == cycle.cycle_id:
                        self._phase = SessionPhase.RECONCILING

            previous = self._published
            previous_by_id = {e.skill_id: e for e in previous}
            now = self._clock()

            entries: list[ActivationEntry] = []
            activated: list[ActivationEntry] = []
            unchanged: list[ActivationEntry] = []
            seen: set[str] = set()

            for candidate in selection:
                if candidate.skill_id in seen:
                    logger.warning(f"Ignoring duplicate selection of '{candidate.skill_id}'")
                    continue
                seen.add(candidate.skill_id)
                before = previous_by_id.get(candidate.skill_id)
                entry = ActivationEntry(
                    skill_id=candidate.skill_id,
                    score=candidate.score,
                    activated_at=before.activated_at if before else now,
                    size_estimate=candidate.size_estimate,
                )
                entries.append(entry)
                (unchanged if before else activated).append(entry)

            deactivated = tuple(e for e in previous if e.skill_id not in seen)
            diff = ActivationDiff(tuple(activated), deactivated, tuple(unchanged))

            if cycle is not None:
                cycle.checkpoint()

            if tuple(entries) != previous.entries:
                self._published = ActivationSet(tuple(entries), previous.version + 1)
            version = self._published.version

        if not diff.is_empty:
            metrics.increment("skill_activated_total", value=len(diff.activated))
            metrics.increment("skill_deactivated_total", value=len(diff.deactivated))
            logger.info(
                f"Activation set v{version}: "
                f"+{len(diff.activated)} -{len(diff.deactivated)} ={len(diff.unchanged)}"
            )
            self._notify(diff)
        return diff

    def _notify(self, diff: ActivationDiff) -> None:
        for listener in list(self._listeners):
            try:
                listener(diff)
            except Exception as e:
                logger.error(f"Activation listener {listener!r} failed: {e}")
