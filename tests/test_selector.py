"""Tests for budgeted selection.

Covers:
  - exact DP optimality on small inputs (checked against brute force)
  - greedy fallback above the cell ceiling and its half-optimal bound
  - the budget invariant for both strategies
  - OversizeSkill diagnostics and deterministic tie-breaking
"""

import itertools
import random

import pytest

from skillselect.observability import metrics
from skillselect.skills.scorer import ScoredCandidate, score
from skillselect.skills.selector import BudgetedSelector
from skillselect.skills.signals import ContextSignal, ContextSnapshot, EvidenceKind


@pytest.fixture
def candidate(skill_factory):
    def make(skill_id: str, value: float, size: int) -> ScoredCandidate:
        return ScoredCandidate(
            skill=skill_factory(skill_id, [skill_id], size=size),
            score=value,
            matched_signals=(ContextSignal(skill_id, 1.0, EvidenceKind.EXPLICIT_MENTION),),
        )
    return make


def brute_force_best(candidates, budget):
    best = 0.0
    for r in range(len(candidates) + 1):
        for combo in itertools.combinations(candidates, r):
            if sum(c.size_estimate for c in combo) <= budget:
                best = max(best, sum(c.score for c in combo))
    return best


class TestScenario:
    def test_narrower_skill_selected_alone(self, scenario_registry):
        ctx = ContextSnapshot.from_signals([
            ContextSignal("react", 3.0, EvidenceKind.DEPENDENCY_MANIFEST),
            ContextSignal("nextjs", 2.0, EvidenceKind.DEPENDENCY_MANIFEST),
        ])
        selection = BudgetedSelector().select(score(scenario_registry, ctx), 900)

        assert selection.skill_ids == ["nextjs-react-typescript"]
        assert selection.total_size <= 900
        assert selection.strategy == "exact"


class TestExact:
    def test_beats_density_order(self, candidate):
        items = [candidate("a", 6.0, 6), candidate("b", 4.9, 5), candidate("c", 4.9, 5)]
        selection = BudgetedSelector().select(items, 10)
        assert sorted(selection.skill_ids) == ["b", "c"]
        assert selection.total_score == pytest.approx(9.8)

    def test_matches_brute_force(self, candidate):
        rng = random.Random(7)
        selector = BudgetedSelector()
        for trial in range(25):
            items = [
                candidate(f"s{trial}-{i}", round(rng.uniform(0.1, 5.0), 3), rng.randint(1, 40))
                for i in range(rng.randint(1, 8))
            ]
            budget = rng.randint(0, 100)
            selection = selector.select(items, budget)
            assert selection.total_size <= budget
            assert selection.total_score == pytest.approx(brute_force_best(items, budget))

    def test_tie_picks_smaller_id(self, candidate):
        for _ in range(5):
            items = [candidate("beta", 2.0, 60), candidate("alpha", 2.0, 60)]
            selection = BudgetedSelector().select(items, 100)
            assert selection.skill_ids == ["alpha"]

    def test_selected_in_ranking_order(self, candidate):
        items = [candidate("low", 1.0, 10), candidate("high", 3.0, 10), candidate("mid", 2.0, 10)]
        selection = BudgetedSelector().select(items, 100)
        assert selection.skill_ids == ["high", "mid", "low"]

    def test_zero_size_candidate(self, candidate):
        selection = BudgetedSelector().select([candidate("tiny", 1.0, 0)], 0)
        assert selection.skill_ids == ["tiny"]

    def test_coarse_resolution_never_exceeds_budget(self, candidate):
        items = [candidate("a", 1.0, 120), candidate("b", 1.0, 120)]

        fine = BudgetedSelector(resolution=1).select(items, 250)
        coarse = BudgetedSelector(resolution=100).select(items, 250)

        assert fine.skill_ids == ["a", "b"]
        assert coarse.skill_ids == ["a"]
        assert coarse.total_size <= 250

    def test_resolution_must_be_positive(self):
        with pytest.raises(ValueError):
            BudgetedSelector(resolution=0)


class TestGreedy:
    def test_used_above_cell_ceiling(self, candidate):
        selector = BudgetedSelector(cell_ceiling=10)
        assert selector.uses_exact(1, 9)
        assert not selector.uses_exact(2, 9)

        items = [candidate("a", 6.0, 6), candidate("b", 4.9, 5), candidate("c", 4.9, 5)]
        selection = selector.select(items, 10)

        assert selection.strategy == "greedy"
        assert selection.skill_ids == ["a"]

    def test_half_optimal_bound(self, candidate):
        rng = random.Random(11)
        greedy = BudgetedSelector(cell_ceiling=1)
        exact = BudgetedSelector()
        for trial in range(25):
            items = [
                candidate(f"g{trial}-{i}", round(rng.uniform(0.1, 5.0), 3), rng.randint(1, 50))
                for i in range(rng.randint(1, 8))
            ]
            budget = rng.randint(1, 120)
            approx = greedy.select(items, budget)
            optimal = exact.select(items, budget)
            assert approx.total_size <= budget
            assert approx.total_score >= optimal.total_score / 2 - 1e-9

    def test_falls_back_to_best_single_candidate(self, candidate):
        items = [candidate("dense", 1.0, 1), candidate("valuable", 5.0, 10)]
        selection = BudgetedSelector(cell_ceiling=1).select(items, 10)
        assert selection.skill_ids == ["valuable"]

    def test_tie_picks_smaller_id(self, candidate):
        items = [candidate("beta", 2.0, 60), candidate("alpha", 2.0, 60)]
        selection = BudgetedSelector(cell_ceiling=1).select(items, 100)
        assert selection.skill_ids == ["alpha"]


class TestCandidateCounts:
    def test_small_count_uses_exact(self, candidate):
        items = [candidate(f"s{i:02d}", 1.0 + i / 10, 10 + i) for i in range(10)]
        selection = BudgetedSelector().select(items, 100)
        assert selection.strategy == "exact"
        assert selection.total_size <= 100

    def test_large_count_uses_greedy_within_budget(self, candidate):
        rng = random.Random(3)
        items = [
            candidate(f"s{i:03d}", round(rng.uniform(0.1, 10.0), 3), rng.randint(50, 2000))
            for i in range(300)
        ]
        selection = BudgetedSelector().select(items, 10_000)

        assert selection.strategy == "greedy"
        assert selection.total_size <= 10_000
        assert selection.selected

    def test_large_count_is_deterministic(self, candidate):
        rng = random.Random(5)
        items = [
            candidate(f"s{i:03d}", round(rng.uniform(0.1, 10.0), 3), rng.randint(50, 2000))
            for i in range(300)
        ]
        selector = BudgetedSelector()
        first = selector.select(items, 10_000)
        second = selector.select(list(reversed(items)), 10_000)
        assert first.skill_ids == second.skill_ids


class TestOversize:
    def test_oversize_reported_not_selected(self, candidate):
        items = [candidate("huge", 10.0, 1000), candidate("small", 1.0, 100)]
        selection = BudgetedSelector().select(items, 900)

        assert selection.skill_ids == ["small"]
        assert [o.skill_id for o in selection.oversize] == ["huge"]
        assert selection.oversize[0].size_estimate == 1000
        assert selection.oversize[0].budget == 900
        assert "exceeds budget" in selection.oversize[0].reason
        assert metrics.get_counter("skill_oversize_total").total() == 1

    def test_all_oversize(self, candidate):
        selection = BudgetedSelector().select([candidate("huge", 10.0, 1000)], 10)
        assert selection.selected == []
        assert selection.strategy == "none"

    def test_negative_budget_treated_as_zero(self, candidate):
        selection = BudgetedSelector().select([candidate("a", 1.0, 1)], -5)
        assert selection.budget == 0
        assert selection.selected == []

    def test_no_candidates(self):
        selection = BudgetedSelector().select([], 100)
        assert selection.selected == []
        assert selection.oversize == []
        assert selection.strategy == "none"
