"""Relevance scoring of registered skills against a context snapshot."""

import math
from dataclasses import dataclass
from typing import Optional

from .loader import Skill
from .registry import RegistrySnapshot
from .signals import ContextSignal, ContextSnapshot


@dataclass(frozen=True)
class ScoredCandidate:
    """A skill with its relevance score and the signals that produced it."""

    skill: Skill
    score: float
    # Ordered by weight (descending), then token.
    matched_signals: tuple[ContextSignal, ...]

    @property
    def skill_id(self) -> str:
        return self.skill.id

    @property
    def size_estimate(self) -> int:
        return self.skill.size_estimate

    @property
    def matched_tokens(self) -> frozenset[str]:
        return frozenset(s.token for s in self.matched_signals)

    @property
    def dominant_signal(self) -> Optional[ContextSignal]:
        """The heaviest matched signal (lexicographically first on ties)."""
        return self.matched_signals[0] if self.matched_signals else None


def ranking_key(candidate: ScoredCandidate) -> tuple[float, int, str]:
    """Sort key: higher score, then more matched signals, then smaller id."""
    return (-candidate.score, -len(candidate.matched_signals), candidate.skill_id)


def normalization_factor(keyword_count: int) -> float:
    """Dampen skills whose keyword sets are broad."""
    return 1.0 + math.log(max(keyword_count, 1))


def score_skill(skill: Skill, context: ContextSnapshot) -> Optional[ScoredCandidate]:
    """Score a single skill; None when no signal matches its keywords."""
    matched = [signal for signal in context if signal.token in skill.keywords]
    if not matched:
        return None
    matched.sort(key=lambda s: (-s.weight, s.token))
    total = sum(s.weight for s in matched)
    return ScoredCandidate(
        skill=skill,
        score=total / normalization_factor(skill.keyword_count),
        matched_signals=tuple(matched),
    )


def score(registry: RegistrySnapshot, context: ContextSnapshot) -> list[ScoredCandidate]:
    """Score every skill that matches at least one context signal.

    Pure function of its inputs. Only skills reachable through the keyword
    index are visited; skills with no matching signal never appear in the
    result.

    Returns:
        Candidates in ranking order (see ranking_key)
    """
    skill_ids: set[str] = set()
    for signal in context:
        skill_ids.update(registry.skills_with_keyword(signal.token))

    candidates = []
    for skill_id in skill_ids:
        candidate = score_skill(registry.skills[skill_id], context)
        if candidate is not None:
            candidates.append(candidate)

    candidates.sort(key=ranking_key)
    return candidates
