"""Skill selection and context-injection engine.

Chooses which SKILL.md guideline documents to load into a bounded
context window for the current project and conversation.

Usage:
    from skillselect import SkillSelectionEngine, ProjectState, ConversationState
    from skillselect.config import settings

    engine = SkillSelectionEngine.from_settings(settings)
    diff = engine.submit(ProjectState.from_manifest(dependencies=["django"]))
"""

from .activation import ActivationDiff, ActivationEntry, ActivationSessionManager, ActivationSet
from .engine import EvaluationReport, PipelineResult, SkillSelectionEngine
from .skills import (
    ContextSignal,
    ContextSnapshot,
    ConversationState,
    CorpusUnavailable,
    DuplicateSkillError,
    EvaluationSuperseded,
    EvidenceKind,
    MetadataError,
    OversizeSkill,
    ProjectState,
    RegistrySnapshot,
    ScoredCandidate,
    Skill,
    SkillRegistry,
    SuppressedSkill,
)

__all__ = [
    "ActivationDiff",
    "ActivationEntry",
    "ActivationSessionManager",
    "ActivationSet",
    "ContextSignal",
    "ContextSnapshot",
    "ConversationState",
    "CorpusUnavailable",
    "DuplicateSkillError",
    "EvaluationReport",
    "EvaluationSuperseded",
    "EvidenceKind",
    "MetadataError",
    "OversizeSkill",
    "PipelineResult",
    "ProjectState",
    "RegistrySnapshot",
    "ScoredCandidate",
    "Skill",
    "SkillRegistry",
    "SkillSelectionEngine",
    "SuppressedSkill",
]
