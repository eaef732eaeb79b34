"""Budgeted selection of candidates (0/1 knapsack).

Maximizes total score subject to ``sum(size_estimate) <= budget``.

Two strategies:

- exact: dynamic programming over the budget axis. Used when
  ``len(candidates) * (budget // resolution + 1)`` stays within the
  configured cell ceiling. Sizes round up and the budget rounds down to
  the resolution, so a coarse resolution can cost optimality but never
  the budget. With resolution 1 the result is optimal.
- greedy: take candidates by score density (score / size), then compare
  the packed set against the single best candidate that fits and keep
  the better of the two. This is at least half the optimal total score.

Both strategies break ties with the scorer's ranking order, so equal
inputs always give the same selection.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Literal

from ..observability import metrics
from .errors import OversizeSkill
from .scorer import ScoredCandidate, ranking_key

logger = logging.getLogger(__name__)

Strategy = Literal["exact", "greedy", "none"]

# Score differences below this are treated as ties.
_EPSILON = 1e-9


@dataclass(frozen=True)
class ActivationCandidateSet:
    """Selection result: chosen candidates plus diagnostics."""

    selected: list[ScoredCandidate] = field(default_factory=list)
    oversize: list[OversizeSkill] = field(default_factory=list)
    budget: int = 0
    strategy: Strategy = "none"

    @property
    def total_size(self) -> int:
        return sum(c.size_estimate for c in self.selected)

    @property
    def total_score(self) -> float:
        return sum(c.score for c in self.selected)

    @property
    def skill_ids(self) -> list[str]:
        return [c.skill_id for c in self.selected]


class BudgetedSelector:
    """Chooses the highest-value subset of candidates that fits a budget."""

    def __init__(self, cell_ceiling: int = 2_000_000, resolution: int = 1):
        """Initialize the selector.

        Args:
            cell_ceiling: Largest DP table (candidates x budget steps) to
                solve exactly; larger problems use the greedy strategy
            resolution: Size quantum for the DP budget axis
        """
        if resolution < 1:
            raise ValueError("resolution must be at least 1")
        self.cell_ceiling = cell_ceiling
        self.resolution = resolution

    def select(self, candidates: list[ScoredCandidate], budget: int) -> ActivationCandidateSet:
        """Select the activation candidates for ``budget``.

        Candidates that exceed the budget on their own are excluded and
        reported as OversizeSkill; their content is never truncated.
        """
        budget = max(budget, 0)
        ordered = sorted(candidates, key=ranking_key)

        fitting = []
        oversize = []
        for candidate in ordered:
            if candidate.size_estimate > budget:
                oversize.append(OversizeSkill(candidate.skill_id, candidate.size_estimate, budget))
            else:
                fitting.append(candidate)

        if oversize:
            metrics.increment("skill_oversize_total", value=len(oversize))
            for record in oversize:
                logger.info(f"Skill '{record.skill_id}' excluded: {record.reason}")

        if not fitting:
            return ActivationCandidateSet([], oversize, budget, "none")

        if self.uses_exact(len(fitting), budget):
            chosen = self._select_exact(fitting, budget)
            strategy: Strategy = "exact"
        else:
            chosen = self._select_greedy(fitting, budget)
            strategy = "greedy"

        selected = sorted(chosen, key=ranking_key)
        logger.debug(
            f"Selected {len(selected)}/{len(candidates)} candidate(s) "
            f"using {strategy} strategy ({sum(c.size_estimate for c in selected)}/{budget})"
        )
        return ActivationCandidateSet(selected, oversize, budget, strategy)

    def uses_exact(self, candidate_count: int, budget: int) -> bool:
        """Whether a problem of this shape is solved with exact DP."""
        return candidate_count * (budget // self.resolution + 1) <= self.cell_ceiling

    def _select_exact(self, candidates: list[ScoredCandidate], budget: int) -> list[ScoredCandidate]:
        capacity = budget // self.resolution
        weights = [math.ceil(c.size_estimate / self.resolution) for c in candidates]

        best = [0.0] * (capacity + 1)
        # taken[i][w]: candidate i improved the optimum at capacity w
        taken = []
        for candidate, weight in zip(candidates, weights):
            row = bytearray(capacity + 1)
            for w in range(capacity, weight - 1, -1):
                value = best[w - weight] + candidate.score
                if value > best[w] + _EPSILON:
                    best[w] = value
                    row[w] = 1
            taken.append(row)

        chosen = []
        w = capacity
        for i in range(len(candidates) - 1, -1, -1):
            if taken[i][w]:
                chosen.append(candidates[i])
                w -= weights[i]
        return chosen

    @staticmethod
    def _select_greedy(candidates: list[ScoredCandidate], budget: int) -> list[ScoredCandidate]:
        by_density = sorted(
            candidates,
            key=lambda c: (-(c.score / max(c.size_estimate, 1)), *ranking_key(c)),
        )
        packed = []
        used = 0
        for candidate in by_density:
            if used + candidate.size_estimate <= budget:
                packed.append(candidate)
                used += candidate.size_estimate

        # candidates are in ranking order, so the first one is the best single fit
        single = candidates[0]
        if single.score > sum(c.score for c in packed) + _EPSILON:
            return [single]
        return packed
