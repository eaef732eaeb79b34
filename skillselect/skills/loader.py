"""Skill loader for parsing SKILL.md documents.

Skills are folders containing a SKILL.md file with YAML frontmatter
(``name`` and ``description`` are required) followed by markdown
guidance. Only the metadata is kept in memory; the body is read again on
demand through a ContentRef.
"""

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Union

import frontmatter
import yaml

from .errors import MetadataError
from .normalize import extract_keywords

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"

SizeUnit = Literal["chars", "tokens"]

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n(.*))?$", re.DOTALL)


@dataclass(frozen=True)
class ContentRef:
    """Lazy handle to the markdown body of a skill document."""

    path: Path

    def load(self) -> str:
        """Read the body text (frontmatter stripped) from disk."""
        post = frontmatter.load(str(self.path))
        return post.content.strip()


@dataclass(frozen=True)
class Skill:
    """Metadata for one guideline document."""

    id: str
    display_name: str
    description: str
    keywords: frozenset[str]
    size_estimate: int
    content_ref: ContentRef
    content_hash: str = ""
    source_path: Path = field(default=Path())

    @property
    def keyword_count(self) -> int:
        return len(self.keywords)

    def load_content(self) -> str:
        return self.content_ref.load()

    def get_injectable_content(self) -> str:
        """Get the skill content formatted for prompt injection."""
        return f"## Skill: {self.display_name}\n\n{self.load_content()}"


def estimate_size(body: str, unit: SizeUnit = "tokens", chars_per_token: int = 4) -> int:
    """Estimate the budget cost of a body in characters or tokens."""
    if unit == "chars":
        return len(body)
    return math.ceil(len(body) / chars_per_token)


def skill_id_for(skill_file: Path) -> str:
    """Derive the stable skill id from the containing directory name."""
    return skill_file.parent.name


class SkillLoader:
    """Parses SKILL.md files into Skill records."""

    def __init__(self, size_unit: SizeUnit = "tokens", chars_per_token: int = 4):
        """Initialize the skill loader.

        Args:
            size_unit: Unit the budget is measured in ("chars" or "tokens")
            chars_per_token: Characters per token for the "tokens" unit
        """
        self.size_unit = size_unit
        self.chars_per_token = chars_per_token

    def load_skill_file(self, skill_file: Union[str, Path]) -> Skill:
        """Parse a SKILL.md file.

        Args:
            skill_file: Path to the SKILL.md file

        Returns:
            Parsed Skill

        Raises:
            MetadataError: If the file cannot be read, has no frontmatter,
                has malformed YAML, or lacks ``name``/``description``
        """
        skill_file = Path(skill_file)
        skill_id = skill_id_for(skill_file)

        try:
            raw = skill_file.read_bytes()
        except OSError as e:
            raise MetadataError(f"Unreadable skill document ({e})", skill_file, skill_id) from e

        return self.parse_skill_bytes(raw, skill_file)

    def parse_skill_bytes(self, raw: bytes, skill_file: Path) -> Skill:
        """Parse raw SKILL.md bytes read from ``skill_file``."""
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MetadataError(f"Skill document is not UTF-8 ({e})", skill_file, skill_id_for(skill_file)) from e
        return self.parse_skill_text(content, skill_file, content_hash=hashlib.sha256(raw).hexdigest())

    def parse_skill_text(self, content: str, skill_file: Path, content_hash: str = "") -> Skill:
        """Parse SKILL.md text that has already been read from ``skill_file``."""
        skill_id = skill_id_for(skill_file)
        if not content_hash:
            content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()

        match = _FRONTMATTER_RE.match(content.lstrip("\ufeff"))
        if not match:
            raise MetadataError("Invalid SKILL.md format (no frontmatter)", skill_file, skill_id)

        body = (match.group(2) or "").strip()

        try:
            metadata = yaml.safe_load(match.group(1))
        except yaml.YAMLError as e:
            raise MetadataError(f"Invalid YAML frontmatter ({e})", skill_file, skill_id) from e

        if not isinstance(metadata, dict):
            raise MetadataError("Frontmatter is not a mapping", skill_file, skill_id)

        name = metadata.get("name")
        description = metadata.get("description")

        if not isinstance(name, str) or not name.strip():
            raise MetadataError("Missing 'name' in frontmatter", skill_file, skill_id)
        if not isinstance(description, str) or not description.strip():
            raise MetadataError("Missing 'description' in frontmatter", skill_file, skill_id)

        keywords = extract_keywords(name, description)
        if not keywords:
            logger.debug(f"Skill {skill_id} produced no keywords and can never match")

        return Skill(
            id=skill_id,
            display_name=name.strip(),
            description=description.strip(),
            keywords=keywords,
            size_estimate=estimate_size(body, self.size_unit, self.chars_per_token),
            content_ref=ContentRef(skill_file),
            content_hash=content_hash,
            source_path=skill_file,
        )
