"""Conflict resolution between overlapping skills.

Overlap is never inferred from text. It is declared in a supersedes
relation file:

    supersedes:
      - skill: nextjs-react-typescript
        over: [react, typescript]

A broader skill is suppressed by a narrower one only when every signal the
broader skill matched was also matched by the narrower skill and both
share a dominant signal: the broader skill's heaviest signal carries the
narrower skill's top weight (ties between tokens count as shared). If the
broader skill matched anything the narrower one did not, both are kept. A
narrower skill that cannot fit the budget on its own suppresses nothing.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml

from ..observability import metrics
from .errors import SupersedesConfigError
from .scorer import ScoredCandidate, ranking_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuppressedSkill:
    """Audit record for a candidate removed in favour of a narrower skill."""

    skill_id: str
    score: float
    superseded_by: str
    shared_signal: str

    @property
    def reason(self) -> str:
        return f"superseded by '{self.superseded_by}' on signal '{self.shared_signal}'"


@dataclass(frozen=True)
class ResolutionResult:
    """Candidates that survived resolution, plus what was suppressed and why."""

    kept: list[ScoredCandidate] = field(default_factory=list)
    suppressed: list[SuppressedSkill] = field(default_factory=list)


class SupersedesGraph:
    """Explicit ``narrower supersedes broader`` relations between skill ids."""

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()):
        """Build the relation.

        Args:
            pairs: ``(narrower_id, broader_id)`` pairs

        Raises:
            SupersedesConfigError: On a self-reference or a cycle
        """
        edges: dict[str, set[str]] = {}
        for narrower, broader in pairs:
            if narrower == broader:
                raise SupersedesConfigError(f"Skill '{narrower}' cannot supersede itself")
            edges.setdefault(narrower, set()).add(broader)
        self._edges = {k: frozenset(v) for k, v in edges.items()}
        self._check_acyclic()

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]]) -> "SupersedesGraph":
        """Load relations from a YAML file; a missing file means no relations."""
        if path is None:
            return cls()
        path = Path(path)
        if not path.exists():
            logger.info(f"No supersedes file at {path}; conflict resolution disabled")
            return cls()

        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise SupersedesConfigError(f"Cannot read supersedes file {path}: {e}") from e

        graph = cls.from_config(content or {})
        logger.info(f"Loaded {len(graph)} supersedes relation(s) from {path}")
        return graph

    @classmethod
    def from_config(cls, content: dict) -> "SupersedesGraph":
        """Build relations from the parsed YAML structure."""
        if not isinstance(content, dict):
            raise SupersedesConfigError("Supersedes config must be a mapping")
        entries = content.get("supersedes", []) or []
        if not isinstance(entries, list):
            raise SupersedesConfigError("'supersedes' must be a list")

        pairs = []
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("skill"), str):
                raise SupersedesConfigError(f"Invalid supersedes entry: {entry!r}")
            over = entry.get("over", [])
            if isinstance(over, str):
                over = [over]
            if not isinstance(over, list) or not all(isinstance(o, str) for o in over):
                raise SupersedesConfigError(f"'over' must be a list of skill ids: {entry!r}")
            pairs.extend((entry["skill"], broader) for broader in over)
        return cls(pairs)

    def _check_acyclic(self) -> None:
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(node: str, trail: list[str]) -> None:
            if node in done:
                return
            if node in visiting:
                cycle = " -> ".join(trail[trail.index(node):] + [node])
                raise SupersedesConfigError(f"Supersedes relation contains a cycle: {cycle}")
            visiting.add(node)
            for nxt in sorted(self._edges.get(node, ())):
                visit(nxt, trail + [node])
            visiting.discard(node)
            done.add(node)

        for node in sorted(self._edges):
            visit(node, [])

    def broader_than(self, narrower: str) -> frozenset[str]:
        return self._edges.get(narrower, frozenset())

    def pairs(self) -> list[tuple[str, str]]:
        return [(n, b) for n in sorted(self._edges) for b in sorted(self._edges[n])]

    def __len__(self) -> int:
        return sum(len(v) for v in self._edges.values())


class ConflictResolver:
    """Drops broader candidates made redundant by a narrower candidate."""

    def __init__(self, supersedes: Optional[SupersedesGraph] = None):
        self.supersedes = supersedes or SupersedesGraph()

    def resolve(
        self,
        candidates: list[ScoredCandidate],
        budget: Optional[int] = None,
    ) -> ResolutionResult:
        """Resolve overlaps among scored candidates.

        Each pair is judged against the unresolved candidate list, so
        chained relations (A over B over C) behave the same regardless of
        evaluation order.

        Args:
            candidates: Scored candidates
            budget: When given, a narrower candidate larger than the budget
                never suppresses anything

        Returns:
            ResolutionResult with kept candidates in ranking order
        """
        by_id = {c.skill_id: c for c in candidates}
        suppressed: dict[str, SuppressedSkill] = {}

        for narrower in sorted(candidates, key=ranking_key):
            if budget is not None and narrower.size_estimate > budget:
                continue
            for broader_id in sorted(self.supersedes.broader_than(narrower.skill_id)):
                broader = by_id.get(broader_id)
                if broader is None or broader_id in suppressed:
                    continue
                shared = self._shared_dominant(broader, narrower)
                if shared is not None:
                    suppressed[broader_id] = SuppressedSkill(
                        skill_id=broader_id,
                        score=broader.score,
                        superseded_by=narrower.skill_id,
                        shared_signal=shared,
                    )

        for record in suppressed.values():
            logger.debug(f"Suppressed skill '{record.skill_id}': {record.reason}")
        if suppressed:
            metrics.increment("skill_suppressed_total", value=len(suppressed))

        kept = sorted((c for c in candidates if c.skill_id not in suppressed), key=ranking_key)
        return ResolutionResult(
            kept=kept,
            suppressed=sorted(suppressed.values(), key=lambda s: s.skill_id),
        )

    @staticmethod
    def _shared_dominant(broader: ScoredCandidate, narrower: ScoredCandidate) -> Optional[str]:
        """The top-weight signal both candidates share, if the broader one is redundant.

        Weight ties are shared, not broken by token: when several signals
        carry the narrower candidate's top weight, any of them the broader
        candidate also leads with counts.
        """
        if not broader.matched_signals or not narrower.matched_signals:
            return None
        if not broader.matched_tokens <= narrower.matched_tokens:
            return None
        top = narrower.matched_signals[0].weight
        for signal in broader.matched_signals:
            if signal.weight == top and signal.token in narrower.matched_tokens:
                return signal.token
        return None
