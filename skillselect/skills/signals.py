"""Context signal extraction.

Turns project evidence (dependency manifests, file extensions) and
conversation text into one immutable ContextSnapshot of weighted,
normalized tokens. Weight tiers come from configuration.
"""

import hashlib
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

from .normalize import normalize_token, tokenize

logger = logging.getLogger(__name__)


class EvidenceKind(str, Enum):
    """Provenance of a context signal."""

    DEPENDENCY_MANIFEST = "dependency-manifest"
    FILE_EXTENSION = "file-extension"
    EXPLICIT_MENTION = "explicit-mention"


# Attribution order when two sources contribute the same weight to a token.
_SOURCE_PRECEDENCE = {
    EvidenceKind.DEPENDENCY_MANIFEST: 0,
    EvidenceKind.FILE_EXTENSION: 1,
    EvidenceKind.EXPLICIT_MENTION: 2,
}


@dataclass(frozen=True)
class ContextSignal:
    """One weighted token of evidence about the current context."""

    token: str
    weight: float
    source: EvidenceKind

    def __post_init__(self):
        if not self.weight > 0:
            raise ValueError(f"Signal weight must be positive, got {self.weight} for '{self.token}'")


@dataclass(frozen=True)
class ContextSnapshot:
    """Immutable set of context signals for one evaluation cycle.

    Signals are unique per token and ordered by token, so two snapshots
    built from the same evidence compare and serialize identically.
    """

    signals: tuple[ContextSignal, ...] = ()
    _by_token: Mapping[str, ContextSignal] = field(
        init=False, repr=False, compare=False, default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self):
        tokens = [s.token for s in self.signals]
        if tokens != sorted(set(tokens)):
            raise ValueError("ContextSnapshot signals must be unique and sorted by token")
        object.__setattr__(self, "_by_token", MappingProxyType({s.token: s for s in self.signals}))

    @classmethod
    def from_signals(cls, signals: Iterable[ContextSignal]) -> "ContextSnapshot":
        """Build a snapshot, merging repeated tokens by summing their weights."""
        merged: dict[str, ContextSignal] = {}
        for signal in signals:
            current = merged.get(signal.token)
            if current is None:
                merged[signal.token] = signal
            else:
                source = current.source if current.weight >= signal.weight else signal.source
                merged[signal.token] = ContextSignal(signal.token, current.weight + signal.weight, source)
        return cls(tuple(merged[token] for token in sorted(merged)))

    def with_signal(self, signal: ContextSignal) -> "ContextSnapshot":
        """Return a new snapshot with one more signal merged in."""
        return ContextSnapshot.from_signals([*self.signals, signal])

    def get(self, token: str) -> Optional[ContextSignal]:
        return self._by_token.get(token)

    def weight_of(self, token: str) -> float:
        signal = self._by_token.get(token)
        return signal.weight if signal else 0.0

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(self._by_token)

    def __len__(self) -> int:
        return len(self.signals)

    def __iter__(self) -> Iterator[ContextSignal]:
        return iter(self.signals)

    def to_bytes(self) -> bytes:
        """Canonical serialization used to detect unchanged context."""
        payload = [[s.token, f"{s.weight:.9f}", s.source.value] for s in self.signals]
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("ascii")

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.to_bytes()).hexdigest()

    def to_dict(self) -> dict:
        return {s.token: {"weight": s.weight, "source": s.source.value} for s in self.signals}


EvidencePair = tuple[str, Union[EvidenceKind, str]]


@dataclass(frozen=True)
class ProjectState:
    """Pre-tokenized project evidence as ``(token, evidence kind)`` pairs."""

    evidence: tuple[tuple[str, EvidenceKind], ...] = ()

    @classmethod
    def of(cls, pairs: Iterable[EvidencePair]) -> "ProjectState":
        return cls(tuple((str(token), EvidenceKind(kind)) for token, kind in pairs))

    @classmethod
    def from_manifest(
        cls,
        dependencies: Iterable[str] = (),
        extensions: Iterable[str] = (),
    ) -> "ProjectState":
        """Convenience constructor from dependency names and file extensions."""
        pairs: list[EvidencePair] = [(d, EvidenceKind.DEPENDENCY_MANIFEST) for d in dependencies]
        pairs.extend((e, EvidenceKind.FILE_EXTENSION) for e in extensions)
        return cls.of(pairs)


@dataclass(frozen=True)
class ConversationState:
    """Raw free-text mentions from the conversation."""

    mentions: tuple[str, ...] = ()

    @classmethod
    def of(cls, mentions: Iterable[str]) -> "ConversationState":
        return cls(tuple(mentions))


@dataclass(frozen=True)
class SignalWeights:
    """Weight tiers per evidence kind."""

    dependency_manifest: float = 3.0
    file_extension: float = 1.5
    explicit_mention: float = 1.0
    mention_repeat_cap: int = 3

    def __post_init__(self):
        for name in ("dependency_manifest", "file_extension", "explicit_mention"):
            if not getattr(self, name) > 0:
                raise ValueError(f"Weight tier '{name}' must be positive")
        if self.mention_repeat_cap < 1:
            raise ValueError("mention_repeat_cap must be at least 1")

    def for_kind(self, kind: EvidenceKind) -> float:
        if kind is EvidenceKind.DEPENDENCY_MANIFEST:
            return self.dependency_manifest
        if kind is EvidenceKind.FILE_EXTENSION:
            return self.file_extension
        return self.explicit_mention


class SignalExtractor:
    """Derives weighted context signals from project and conversation state.

    Per token, each evidence kind contributes at most once for manifests
    and file extensions; free-text mentions add the mention weight per
    occurrence up to ``mention_repeat_cap``. Contributions from different
    kinds are summed, and the signal is attributed to the kind that
    contributed most.
    """

    def __init__(
        self,
        weights: Optional[SignalWeights] = None,
        extension_aliases: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self.weights = weights or SignalWeights()
        self.extension_aliases: dict[str, tuple[str, ...]] = {}
        for extension, targets in (extension_aliases or {}).items():
            key = normalize_token(extension)
            if key is None:
                continue
            normalized = (normalize_token(t) for t in targets)
            self.extension_aliases[key] = tuple(sorted({t for t in normalized if t}))

    def extract(
        self,
        project_state: Optional[ProjectState] = None,
        conversation_state: Optional[ConversationState] = None,
    ) -> ContextSnapshot:
        """Build the context snapshot for one evaluation cycle.

        Args:
            project_state: Dependency and file-extension evidence
            conversation_state: Free-text mentions

        Returns:
            ContextSnapshot; identical input always yields an identical snapshot
        """
        project_state = project_state or ProjectState()
        conversation_state = conversation_state or ConversationState()

        contributions: dict[str, dict[EvidenceKind, float]] = {}
        mentions: Counter = Counter()

        for raw, kind in project_state.evidence:
            kind = EvidenceKind(kind)
            if kind is EvidenceKind.EXPLICIT_MENTION:
                mentions.update(tokenize(raw))
                continue
            token = normalize_token(raw)
            if token is None:
                continue
            tokens = [token]
            if kind is EvidenceKind.FILE_EXTENSION:
                tokens.extend(self.extension_aliases.get(token, ()))
            for t in tokens:
                contributions.setdefault(t, {})[kind] = self.weights.for_kind(kind)

        for text in conversation_state.mentions:
            mentions.update(tokenize(text))

        for token, count in mentions.items():
            capped = min(count, self.weights.mention_repeat_cap)
            contributions.setdefault(token, {})[EvidenceKind.EXPLICIT_MENTION] = (
                self.weights.explicit_mention * capped
            )

        signals = []
        for token in sorted(contributions):
            by_kind = contributions[token]
            source = min(by_kind, key=lambda k: (-by_kind[k], _SOURCE_PRECEDENCE[k]))
            weight = sum(by_kind[k] for k in sorted(by_kind, key=_SOURCE_PRECEDENCE.get))
            signals.append(ContextSignal(token, weight, source))

        snapshot = ContextSnapshot(tuple(signals))
        logger.debug(f"Extracted {len(snapshot)} context signal(s)")
        return snapshot
