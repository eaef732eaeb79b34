"""Skill registry: scans the corpus and publishes immutable snapshots.

A RegistrySnapshot is never mutated after it is published. ``build`` scans
the whole corpus; ``refresh`` re-parses only the changed paths and
assembles a new snapshot from the previous one (copy-on-write), so scoring
that is still running against the older snapshot is unaffected.
"""

import hashlib
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional, Union

from ..observability import metrics
from .errors import (
    CorpusUnavailable,
    DuplicateSkillError,
    MetadataError,
    RegistryRefreshTimeout,
    SkillDocumentError,
)
from .loader import SKILL_FILENAME, Skill, SkillLoader

logger = logging.getLogger(__name__)

ParseResult = Union[Skill, MetadataError]


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of every registered skill at one point in time."""

    version: int = 0
    corpus_root: Optional[Path] = None
    skills: Mapping[str, Skill] = field(default_factory=_empty_mapping)
    errors: tuple[SkillDocumentError, ...] = ()
    keyword_index: Mapping[str, tuple[str, ...]] = field(default_factory=_empty_mapping)
    # Every parsed document (valid, invalid, or shadowed), keyed by path,
    # and the order in which paths were first registered.
    documents: Mapping[Path, ParseResult] = field(default_factory=_empty_mapping, repr=False)
    registration_order: tuple[Path, ...] = field(default=(), repr=False)

    @classmethod
    def from_skills(cls, skills: Iterable[Skill], version: int = 0) -> "RegistrySnapshot":
        """Build a snapshot directly from Skill records (first id wins)."""
        documents: dict[Path, ParseResult] = {}
        order: list[Path] = []
        for index, skill in enumerate(skills):
            key = skill.source_path
            # In-memory skills may share a placeholder path; key them uniquely.
            if key == Path() or key in documents:
                key = Path(f"<memory:{index}>")
            documents[key] = skill
            order.append(key)
        return assemble_snapshot(version, None, order, documents)

    def get(self, skill_id: str) -> Optional[Skill]:
        return self.skills.get(skill_id)

    def __contains__(self, skill_id: object) -> bool:
        return skill_id in self.skills

    def __len__(self) -> int:
        return len(self.skills)

    def __iter__(self) -> Iterator[Skill]:
        return iter(self.skills.values())

    def skills_with_keyword(self, token: str) -> tuple[str, ...]:
        """Ids of skills whose keyword set contains ``token``."""
        return self.keyword_index.get(token, ())

    def metadata_errors(self) -> list[MetadataError]:
        return [e for e in self.errors if isinstance(e, MetadataError)]

    def duplicate_errors(self) -> list[DuplicateSkillError]:
        return [e for e in self.errors if isinstance(e, DuplicateSkillError)]


def assemble_snapshot(
    version: int,
    corpus_root: Optional[Path],
    order: Iterable[Path],
    documents: Mapping[Path, ParseResult],
) -> RegistrySnapshot:
    """Register parsed documents in order and freeze the result.

    The first document to claim an id owns it; later claimants are
    recorded as DuplicateSkillError and stay in ``documents`` so they can
    be promoted if the owner disappears.
    """
    order = tuple(order)
    skills: dict[str, Skill] = {}
    owners: dict[str, Path] = {}
    errors: list[SkillDocumentError] = []

    for path in order:
        result = documents[path]
        if isinstance(result, MetadataError):
            errors.append(result)
            continue
        if result.id in skills:
            errors.append(DuplicateSkillError(result.id, path, owners[result.id]))
            continue
        skills[result.id] = result
        owners[result.id] = path

    index: dict[str, list[str]] = {}
    for skill_id in sorted(skills):
        for token in skills[skill_id].keywords:
            index.setdefault(token, []).append(skill_id)

    return RegistrySnapshot(
        version=version,
        corpus_root=corpus_root,
        skills=MappingProxyType({k: skills[k] for k in sorted(skills)}),
        errors=tuple(errors),
        keyword_index=MappingProxyType({k: tuple(v) for k, v in sorted(index.items())}),
        documents=MappingProxyType(dict(documents)),
        registration_order=order,
    )


def check_corpus_root(corpus_root: Path) -> None:
    """Raise CorpusUnavailable unless the corpus root is a readable directory."""
    if not corpus_root.exists():
        raise CorpusUnavailable(corpus_root, "does not exist")
    if not corpus_root.is_dir():
        raise CorpusUnavailable(corpus_root, "not a directory")
    if not os.access(corpus_root, os.R_OK | os.X_OK):
        raise CorpusUnavailable(corpus_root, "permission denied")
    try:
        next(corpus_root.iterdir(), None)
    except OSError as e:
        raise CorpusUnavailable(corpus_root, str(e)) from e


class SkillRegistry:
    """Single writer for registry snapshots.

    Usage:
        registry = SkillRegistry()
        snapshot = registry.build(Path("skills"))
        snapshot = registry.refresh(["react/SKILL.md"])
    """

    def __init__(
        self,
        loader: Optional[SkillLoader] = None,
        refresh_timeout: float = 5.0,
        max_workers: int = 8,
    ):
        """Initialize the registry.

        Args:
            loader: SkillLoader used to parse documents
            refresh_timeout: Seconds to wait for filesystem I/O per build/refresh
            max_workers: Threads used to read documents in parallel
        """
        self.loader = loader or SkillLoader()
        self.refresh_timeout = refresh_timeout
        self.max_workers = max_workers
        self._snapshot = RegistrySnapshot()
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> RegistrySnapshot:
        """The last published snapshot (never blocks on a running refresh)."""
        return self._snapshot

    def build(self, corpus_root: Union[str, Path]) -> RegistrySnapshot:
        """Scan the whole corpus and publish a fresh snapshot.

        Raises:
            CorpusUnavailable: If the corpus root cannot be read
            RegistryRefreshTimeout: If scanning or parsing exceeds the timeout
        """
        corpus_root = Path(os.path.abspath(corpus_root))
        started = time.perf_counter()
        with self._write_lock:
            check_corpus_root(corpus_root)
            paths = self._bounded(self._scan, corpus_root)
            parsed = self._parse_paths(paths, {})
            snapshot = assemble_snapshot(self._snapshot.version + 1, corpus_root, paths, parsed)
            self._publish(snapshot)

        metrics.observe("registry_refresh_duration_seconds", time.perf_counter() - started)
        logger.info(
            f"Built skill registry v{snapshot.version}: {len(snapshot)} skills, "
            f"{len(snapshot.errors)} excluded document(s) from {corpus_root}"
        )
        return snapshot

    def refresh(self, changed_paths: Iterable[Union[str, Path]]) -> RegistrySnapshot:
        """Re-parse only the changed paths and publish a new snapshot.

        Paths may point at a SKILL.md file or at its skill directory, and
        may be relative to the corpus root. Paths that no longer exist
        remove their document.

        Raises:
            CorpusUnavailable: If the corpus root has disappeared
            RegistryRefreshTimeout: If re-parsing exceeds the timeout; the
                previous snapshot stays published
        """
        started = time.perf_counter()
        with self._write_lock:
            base = self._snapshot
            if base.corpus_root is None:
                raise RuntimeError("Registry has not been built; call build() first")
            check_corpus_root(base.corpus_root)

            targets = sorted({
                path for path in (self._skill_file_for(base.corpus_root, p) for p in changed_paths)
                if path is not None
            })
            if not targets:
                return base

            existing = [p for p in targets if p.is_file()]
            reparsed = self._parse_paths(existing, base.documents)

            documents = dict(base.documents)
            for path in targets:
                if path in reparsed:
                    documents[path] = reparsed[path]
                else:
                    documents.pop(path, None)

            order = [p for p in base.registration_order if p in documents]
            order.extend(p for p in targets if p in documents and p not in base.documents)

            changed = sum(
                1 for p in targets if documents.get(p) is not base.documents.get(p)
            )
            if not changed:
                logger.debug(f"Refresh of {len(targets)} path(s) found no content changes")
                return base

            snapshot = assemble_snapshot(base.version + 1, base.corpus_root, order, documents)
            self._publish(snapshot)

        metrics.observe("registry_refresh_duration_seconds", time.perf_counter() - started)
        added = snapshot.skills.keys() - base.skills.keys()
        removed = base.skills.keys() - snapshot.skills.keys()
        logger.info(
            f"Refreshed skill registry v{snapshot.version}: {changed} document(s) changed, "
            f"{len(added)} added, {len(removed)} removed"
        )
        return snapshot

    def _publish(self, snapshot: RegistrySnapshot) -> None:
        previous_errors = {(type(e), e.path) for e in self._snapshot.errors}
        for error in snapshot.errors:
            if (type(error), error.path) in previous_errors:
                continue
            if isinstance(error, DuplicateSkillError):
                metrics.increment("skill_duplicate_total")
            else:
                metrics.increment("skill_metadata_error_total")
            logger.warning(f"Excluding skill document: {error}")
        self._snapshot = snapshot

    @staticmethod
    def _scan(corpus_root: Path) -> list[Path]:
        return sorted(corpus_root.rglob(SKILL_FILENAME))

    @staticmethod
    def _skill_file_for(corpus_root: Path, changed: Union[str, Path]) -> Optional[Path]:
        path = Path(changed)
        if not path.is_absolute():
            path = corpus_root / path
        path = Path(os.path.abspath(path))
        if not path.is_relative_to(corpus_root):
            logger.warning(f"Ignoring path outside the skill corpus: {path}")
            return None
        if path.name == SKILL_FILENAME:
            return path
        # A deleted skill directory may look like a file (vue.js-rules).
        if path.is_dir() or not (path.is_file() or path.suffix == ".md"):
            return path / SKILL_FILENAME
        logger.debug(f"Ignoring non-skill path change: {path}")
        return None

    def _parse_one(self, path: Path, previous: Optional[ParseResult]) -> ParseResult:
        try:
            raw = path.read_bytes()
        except OSError as e:
            return MetadataError(f"Unreadable skill document ({e})", path, path.parent.name)

        if isinstance(previous, Skill) and hashlib.sha256(raw).hexdigest() == previous.content_hash:
            return previous

        try:
            return self.loader.parse_skill_bytes(raw, path)
        except MetadataError as e:
            return e

    def _parse_paths(
        self,
        paths: list[Path],
        previous: Mapping[Path, ParseResult],
    ) -> dict[Path, ParseResult]:
        if not paths:
            return {}
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(paths)))
        try:
            futures = {executor.submit(self._parse_one, p, previous.get(p)): p for p in paths}
            done, pending = wait(futures, timeout=self.refresh_timeout)
            if pending:
                raise RegistryRefreshTimeout(self.refresh_timeout, len(pending))
            return {futures[f]: f.result() for f in done}
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _bounded(self, fn, *args):
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(fn, *args)
            done, _ = wait([future], timeout=self.refresh_timeout)
            if not done:
                raise RegistryRefreshTimeout(self.refresh_timeout, 1)
            return future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
