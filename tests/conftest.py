"""
Pytest configuration and fixtures for skill selection tests.

This conftest.py provides:
- A corpus writer that lays out <skill-id>/SKILL.md documents under tmp_path
- An in-memory Skill factory for tests that do not need the filesystem
- Metric isolation between tests
"""

import sys
from pathlib import Path
from typing import Iterable, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from skillselect.observability import metrics
from skillselect.skills.loader import ContentRef, Skill
from skillselect.skills.registry import RegistrySnapshot


def skill_markdown(name: str, description: Optional[str], body: str = "Guidance.") -> str:
    lines = ["---", f"name: {name}"]
    if description is not None:
        lines.append(f"description: {description}")
    lines.extend(["---", "", body, ""])
    return "\n".join(lines)


class CorpusWriter:
    """Writes skill documents into a temporary corpus directory."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def add(
        self,
        skill_id: str,
        description: Optional[str] = "General guidance",
        body: str = "Guidance.",
        name: Optional[str] = None,
        parent: str = "",
    ) -> Path:
        skill_dir = self.root / parent / skill_id if parent else self.root / skill_id
        skill_dir.mkdir(parents=True, exist_ok=True)
        path = skill_dir / "SKILL.md"
        path.write_text(skill_markdown(name or skill_id, description, body), encoding="utf-8")
        return path

    def write_raw(self, skill_id: str, content: str) -> Path:
        skill_dir = self.root / skill_id
        skill_dir.mkdir(parents=True, exist_ok=True)
        path = skill_dir / "SKILL.md"
        path.write_text(content, encoding="utf-8")
        return path


@pytest.fixture
def corpus(tmp_path):
    """Return a CorpusWriter rooted at tmp_path/skills."""
    return CorpusWriter(tmp_path / "skills")


def make_skill(
    skill_id: str,
    keywords: Iterable[str],
    size: int = 100,
    description: str = "",
) -> Skill:
    """Build an in-memory Skill with an explicit keyword set."""
    return Skill(
        id=skill_id,
        display_name=skill_id,
        description=description or skill_id,
        keywords=frozenset(keywords),
        size_estimate=size,
        content_ref=ContentRef(Path(f"/nonexistent/{skill_id}/SKILL.md")),
    )


@pytest.fixture
def scenario_registry():
    """The three-skill corpus used by the selection scenarios."""
    return RegistrySnapshot.from_skills([
        make_skill("react", ["react", "jsx", "hooks"], size=500),
        make_skill("nextjs-react-typescript", ["react", "nextjs", "typescript"], size=700),
        make_skill("django-python", ["django", "python"], size=600),
    ])


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with zeroed metrics."""
    metrics.reset_all()
    yield
    metrics.reset_all()


@pytest.fixture
def skill_factory():
    """Return the in-memory Skill factory."""
    return make_skill
