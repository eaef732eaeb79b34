"""Skill selection engine.

Wires the pipeline end to end:

    registry snapshot -> signal extraction -> scoring -> conflict
    resolution -> budgeted selection -> reconcile

Context changes are handled by a single drain loop. A context that
arrives while a cycle is running replaces any pending context
(last-write-wins) and supersedes the running cycle. The running cycle
stops at its next stage boundary, and the loop starts over with the
latest context. The published ActivationSet only changes inside
ActivationSessionManager.reconcile.

Usage:
    from skillselect.config import settings
    from skillselect.engine import SkillSelectionEngine
    from skillselect.observability import setup_logging
    from skillselect.skills.signals import ConversationState, ProjectState

    setup_logging(settings.log_level)
    engine = SkillSelectionEngine.from_settings(settings)
    engine.subscribe(lambda diff: print(diff.to_dict()))
    diff = engine.submit(
        ProjectState.from_manifest(dependencies=["react", "next"], extensions=["tsx"]),
        ConversationState.of(["How should I structure Next.js server actions?"]),
    )
    prompt_context = engine.get_active_content()
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml

from .activation.session import (
    ActivationDiff,
    ActivationSessionManager,
    ActivationSet,
    CycleToken,
    DiffListener,
    SessionPhase,
)
from .config import Settings
from .observability import get_logger, metrics
from .skills.errors import EvaluationSuperseded, OversizeSkill, SkillDocumentError
from .skills.loader import SkillLoader
from .skills.registry import RegistrySnapshot, SkillRegistry
from .skills.resolver import ConflictResolver, SupersedesGraph, SuppressedSkill
from .skills.scorer import ScoredCandidate, score
from .skills.selector import ActivationCandidateSet, BudgetedSelector, Strategy
from .skills.signals import (
    ContextSnapshot,
    ConversationState,
    ProjectState,
    SignalExtractor,
    SignalWeights,
)

logger = logging.getLogger(__name__)

SKILL_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class PipelineResult:
    """Output of the pure stages for one registry/context/budget triple."""

    candidates: tuple[ScoredCandidate, ...]
    suppressed: tuple[SuppressedSkill, ...]
    selection: ActivationCandidateSet


@dataclass(frozen=True)
class EvaluationReport:
    """Diagnostics for the last published evaluation cycle."""

    cycle_id: int
    registry_version: int
    budget: int
    context: ContextSnapshot
    candidates: tuple[ScoredCandidate, ...]
    suppressed: tuple[SuppressedSkill, ...]
    oversize: tuple[OversizeSkill, ...]
    registry_errors: tuple[SkillDocumentError, ...]
    strategy: Strategy
    diff: ActivationDiff


class SkillSelectionEngine:
    """Chooses which skills are active for the current project context."""

    def __init__(
        self,
        corpus_root: Union[str, Path],
        budget: int,
        registry: Optional[SkillRegistry] = None,
        extractor: Optional[SignalExtractor] = None,
        resolver: Optional[ConflictResolver] = None,
        selector: Optional[BudgetedSelector] = None,
        session: Optional[ActivationSessionManager] = None,
        min_score: float = 0.0,
    ):
        """Build the registry and prepare the pipeline.

        Args:
            corpus_root: Directory tree of ``<skill-id>/SKILL.md`` documents
            budget: Maximum total size of active skills
            registry: Registry to build into (a default one if omitted)
            extractor: Signal extractor (default weight tiers if omitted)
            resolver: Conflict resolver (no supersedes relations if omitted)
            selector: Budgeted selector
            session: Activation session manager
            min_score: Candidates scoring at or below this are discarded

        Raises:
            CorpusUnavailable: If the corpus root cannot be read
        """
        self.registry = registry or SkillRegistry()
        self.extractor = extractor or SignalExtractor()
        self.resolver = resolver or ConflictResolver()
        self.selector = selector or BudgetedSelector()
        self.session = session or ActivationSessionManager()
        self.min_score = min_score
        self._budget = max(budget, 0)

        self._pending_lock = threading.Lock()
        self._pending: Optional[tuple[ProjectState, ConversationState]] = None
        self._latest_context: Optional[tuple[ProjectState, ConversationState]] = None
        self._draining = False
        self._last_inputs: Optional[tuple[int, str, int]] = None
        self._last_report: Optional[EvaluationReport] = None

        self.registry.build(corpus_root)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SkillSelectionEngine":
        """Create an engine with every component configured from settings.

        Raises:
            CorpusUnavailable: If ``settings.skills_dir`` cannot be read
            SupersedesConfigError: If the supersedes file is invalid
        """
        loader = SkillLoader(size_unit=settings.budget_unit, chars_per_token=settings.chars_per_token)
        weights = SignalWeights(
            dependency_manifest=settings.signal_weight_manifest,
            file_extension=settings.signal_weight_extension,
            explicit_mention=settings.signal_weight_mention,
            mention_repeat_cap=settings.mention_repeat_cap,
        )
        return cls(
            corpus_root=settings.skills_dir,
            budget=settings.context_budget,
            registry=SkillRegistry(loader=loader, refresh_timeout=settings.refresh_timeout_seconds),
            extractor=SignalExtractor(weights, settings.extension_aliases),
            resolver=ConflictResolver(SupersedesGraph.from_file(settings.resolve_supersedes_path())),
            selector=BudgetedSelector(
                cell_ceiling=settings.knapsack_cell_ceiling,
                resolution=settings.budget_resolution,
            ),
            min_score=settings.min_relevance_score,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def registry_snapshot(self) -> RegistrySnapshot:
        return self.registry.snapshot

    @property
    def activation_set(self) -> ActivationSet:
        return self.session.current

    @property
    def phase(self) -> SessionPhase:
        return self.session.phase

    @property
    def last_report(self) -> Optional[EvaluationReport]:
        return self._last_report

    def subscribe(self, listener: DiffListener) -> None:
        """Receive every published non-empty ActivationDiff."""
        self.session.subscribe(listener)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run_pipeline(
        self,
        registry: RegistrySnapshot,
        context: ContextSnapshot,
        budget: Optional[int] = None,
        cycle: Optional[CycleToken] = None,
    ) -> PipelineResult:
        """Run scoring, resolution and selection without publishing anything.

        Deterministic for fixed inputs. When ``cycle`` is given it is
        checked at every stage boundary.
        """
        budget = self._budget if budget is None else budget

        candidates = [c for c in score(registry, context) if c.score > self.min_score]
        if cycle is not None:
            cycle.checkpoint()

        resolution = self.resolver.resolve(candidates, budget)
        if cycle is not None:
            cycle.checkpoint()

        selection = self.selector.select(resolution.kept, budget)
        if cycle is not None:
            cycle.checkpoint()

        return PipelineResult(tuple(candidates), tuple(resolution.suppressed), selection)

    def submit(
        self,
        project_state: Optional[ProjectState] = None,
        conversation_state: Optional[ConversationState] = None,
    ) -> Optional[ActivationDiff]:
        """Handle a context change.

        If no cycle is running, evaluates on the calling thread until no
        newer context is pending and returns the last published diff. If a
        cycle is already running on another thread, the context is queued
        for it and None is returned.
        """
        context = (project_state or ProjectState(), conversation_state or ConversationState())
        with self._pending_lock:
            self._pending = context
            self._latest_context = context
            self.session.invalidate()
            if self._draining:
                logger.debug("Context change queued behind running evaluation")
                return None
            self._draining = True

        result: Optional[ActivationDiff] = None
        try:
            while True:
                with self._pending_lock:
                    if self._pending is None:
                        self._draining = False
                        return result
                    project, conversation = self._pending
                    self._pending = None
                    cycle = self.session.begin_cycle()

                diff = self._run_cycle(cycle, project, conversation)
                if diff is not None:
                    result = diff
        except BaseException:
            with self._pending_lock:
                self._draining = False
            raise

    evaluate = submit

    def reevaluate(self) -> Optional[ActivationDiff]:
        """Run the pipeline again against the latest submitted context."""
        if self._latest_context is None:
            return None
        return self.submit(*self._latest_context)

    def set_budget(self, budget: int, reevaluate: bool = True) -> Optional[ActivationDiff]:
        """Change the activation budget, re-running the pipeline by default."""
        self._budget = max(budget, 0)
        if reevaluate:
            return self.reevaluate()
        return None

    def refresh(
        self,
        changed_paths: Iterable[Union[str, Path]],
        reevaluate: bool = True,
    ) -> RegistrySnapshot:
        """Apply filesystem changes to the registry.

        When the registry changes and a context has been evaluated before,
        the pipeline runs again against the latest context.

        Raises:
            CorpusUnavailable: If the corpus root has disappeared
            RegistryRefreshTimeout: If filesystem I/O exceeds the timeout
        """
        before = self.registry.snapshot.version
        snapshot = self.registry.refresh(changed_paths)
        if reevaluate and snapshot.version != before:
            self.reevaluate()
        return snapshot

    def _run_cycle(
        self,
        cycle: CycleToken,
        project_state: ProjectState,
        conversation_state: ConversationState,
    ) -> Optional[ActivationDiff]:
        log = get_logger("engine", cycle.cycle_id)
        started = time.perf_counter()
        registry = self.registry.snapshot
        budget = self._budget

        try:
            context = self.extractor.extract(project_state, conversation_state)
            cycle.checkpoint()

            inputs = (registry.version, context.fingerprint, budget)
            if inputs == self._last_inputs:
                metrics.increment("evaluation_cycle_total", labels={"outcome": "skipped"})
                log.debug("cycle_skipped", reason="inputs unchanged")
                return ActivationDiff(unchanged=self.session.current.entries)

            result = self.run_pipeline(registry, context, budget, cycle)
            diff = self.session.reconcile(result.selection.selected, cycle)
        except EvaluationSuperseded as e:
            metrics.increment("evaluation_cycle_total", labels={"outcome": "superseded"})
            log.info("cycle_superseded", latest_generation=e.latest_id)
            return None
        finally:
            self.session.finish_cycle(cycle)

        self._last_inputs = inputs
        self._last_report = EvaluationReport(
            cycle_id=cycle.cycle_id,
            registry_version=registry.version,
            budget=budget,
            context=context,
            candidates=result.candidates,
            suppressed=result.suppressed,
            oversize=tuple(result.selection.oversize),
            registry_errors=registry.errors,
            strategy=result.selection.strategy,
            diff=diff,
        )

        metrics.increment("evaluation_cycle_total", labels={"outcome": "published"})
        metrics.observe("evaluation_duration_seconds", time.perf_counter() - started)
        log.info(
            "cycle_published",
            registry_version=registry.version,
            signals=len(context),
            candidates=len(result.candidates),
            suppressed=len(result.suppressed),
            oversize=len(result.selection.oversize),
            strategy=result.selection.strategy,
            activated=[e.skill_id for e in diff.activated],
            deactivated=[e.skill_id for e in diff.deactivated],
        )
        return diff

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def load_content(self, skill_id: str) -> str:
        """Resolve the full body of a registered skill.

        Raises:
            KeyError: If the skill is not registered
        """
        skill = self.registry.snapshot.get(skill_id)
        if skill is None:
            raise KeyError(f"Skill not registered: {skill_id}")
        return skill.load_content()

    def get_active_content(self) -> str:
        """Combined injectable content of every active skill, in activation order."""
        registry = self.registry.snapshot
        parts = []
        for entry in self.session.current:
            skill = registry.get(entry.skill_id)
            if skill is None:
                logger.warning(f"Active skill '{entry.skill_id}' is no longer registered")
                continue
            try:
                parts.append(skill.get_injectable_content())
            except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
                logger.error(f"Failed to load content for skill '{entry.skill_id}': {e}")
        return SKILL_SEPARATOR.join(parts)
