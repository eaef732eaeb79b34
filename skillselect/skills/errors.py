"""Error taxonomy for skill loading, selection, and activation.

Document-scoped errors (MetadataError, DuplicateSkillError) are collected
on registry snapshots rather than raised. CorpusUnavailable and
SupersedesConfigError stop the engine from starting. EvaluationSuperseded
is a cancellation signal, not a failure.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


class SkillSelectionError(Exception):
    """Base class for all engine errors."""


class SkillDocumentError(SkillSelectionError):
    """Error scoped to a single skill document."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        skill_id: Optional[str] = None,
    ):
        self.path = Path(path) if path else None
        self.skill_id = skill_id
        self.reason = message
        super().__init__(f"{message}" + (f": {path}" if path else ""))


class MetadataError(SkillDocumentError):
    """Missing required frontmatter field or malformed YAML."""


class DuplicateSkillError(SkillDocumentError):
    """A second document resolved to an id that is already registered."""

    def __init__(self, skill_id: str, path: Union[str, Path], registered_path: Union[str, Path]):
        self.registered_path = Path(registered_path)
        super().__init__(
            f"Duplicate skill id '{skill_id}' (already registered from {registered_path})",
            path,
            skill_id,
        )


class CorpusUnavailable(SkillSelectionError):
    """The corpus root is missing, not a directory, or unreadable."""

    def __init__(self, corpus_root: Union[str, Path], detail: str = ""):
        self.corpus_root = Path(corpus_root)
        message = f"Skill corpus unavailable: {corpus_root}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class RegistryRefreshTimeout(SkillSelectionError):
    """Filesystem I/O for a registry build or refresh exceeded its deadline."""

    def __init__(self, timeout: float, pending: int):
        self.timeout = timeout
        self.pending = pending
        super().__init__(
            f"Registry I/O did not finish within {timeout:.2f}s ({pending} path(s) pending)"
        )


class SupersedesConfigError(SkillSelectionError):
    """The supersedes relation file is malformed or contains a cycle."""


class EvaluationSuperseded(SkillSelectionError):
    """Raised at a stage boundary when a newer context has arrived."""

    def __init__(self, cycle_id: int, latest_id: int):
        self.cycle_id = cycle_id
        self.latest_id = latest_id
        super().__init__(f"Evaluation cycle {cycle_id} superseded by {latest_id}")


@dataclass(frozen=True)
class OversizeSkill:
    """Diagnostic for a skill that cannot fit the budget on its own."""

    skill_id: str
    size_estimate: int
    budget: int

    @property
    def reason(self) -> str:
        return f"size {self.size_estimate} exceeds budget {self.budget}"
