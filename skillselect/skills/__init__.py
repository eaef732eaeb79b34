"""Skill corpus handling: loading, indexing, scoring, and selection.

Usage:
    from skillselect.skills import ProjectState, SignalExtractor, SkillRegistry, score

    snapshot = SkillRegistry().build("skills/")
    context = SignalExtractor().extract(ProjectState.from_manifest(["react"]))
    candidates = score(snapshot, context)
"""

from .errors import (
    CorpusUnavailable,
    DuplicateSkillError,
    EvaluationSuperseded,
    MetadataError,
    OversizeSkill,
    RegistryRefreshTimeout,
    SkillDocumentError,
    SkillSelectionError,
    SupersedesConfigError,
)
from .loader import ContentRef, Skill, SkillLoader
from .normalize import extract_keywords, normalize_token, tokenize
from .registry import RegistrySnapshot, SkillRegistry
from .resolver import ConflictResolver, ResolutionResult, SupersedesGraph, SuppressedSkill
from .scorer import ScoredCandidate, ranking_key, score
from .selector import ActivationCandidateSet, BudgetedSelector
from .signals import (
    ContextSignal,
    ContextSnapshot,
    ConversationState,
    EvidenceKind,
    ProjectState,
    SignalExtractor,
    SignalWeights,
)

__all__ = [
    "ActivationCandidateSet",
    "BudgetedSelector",
    "ConflictResolver",
    "ContentRef",
    "ContextSignal",
    "ContextSnapshot",
    "ConversationState",
    "CorpusUnavailable",
    "DuplicateSkillError",
    "EvaluationSuperseded",
    "EvidenceKind",
    "MetadataError",
    "OversizeSkill",
    "ProjectState",
    "RegistryRefreshTimeout",
    "RegistrySnapshot",
    "ResolutionResult",
    "ScoredCandidate",
    "SignalExtractor",
    "SignalWeights",
    "Skill",
    "SkillDocumentError",
    "SkillLoader",
    "SkillRegistry",
    "SkillSelectionError",
    "SupersedesConfigError",
    "SupersedesGraph",
    "SuppressedSkill",
    "extract_keywords",
    "normalize_token",
    "ranking_key",
    "score",
    "tokenize",
]
