"""Configuration management for the skill selection engine."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# File-extension tokens that imply one or more technology tokens.
DEFAULT_EXTENSION_ALIASES: dict[str, list[str]] = {
    "py": ["python"],
    "ipynb": ["python", "jupyter"],
    "js": ["javascript"],
    "jsx": ["javascript", "react"],
    "ts": ["typescript"],
    "tsx": ["typescript", "react"],
    "vue": ["vue"],
    "svelte": ["svelte"],
    "rs": ["rust"],
    "go": ["go"],
    "rb": ["ruby"],
    "kt": ["kotlin"],
    "swift": ["swift"],
    "dart": ["dart", "flutter"],
    "sol": ["solidity"],
    "tf": ["terraform"],
    "dockerfile": ["docker"],
}


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Corpus
    skills_dir: Path = Field(default=Path("./skills"))
    supersedes_path: Optional[Path] = Field(default=None)
    refresh_timeout_seconds: float = Field(default=5.0, gt=0)

    # Budget
    context_budget: int = Field(default=8000, ge=0)
    budget_unit: Literal["chars", "tokens"] = Field(default="tokens")
    chars_per_token: int = Field(default=4, ge=1)

    # Signal weight tiers
    signal_weight_manifest: float = Field(default=3.0, gt=0)
    signal_weight_extension: float = Field(default=1.5, gt=0)
    signal_weight_mention: float = Field(default=1.0, gt=0)
    mention_repeat_cap: int = Field(default=3, ge=1)
    extension_aliases: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_EXTENSION_ALIASES.items()}
    )

    # Scoring and selection
    min_relevance_score: float = Field(default=0.0, ge=0)
    knapsack_cell_ceiling: int = Field(default=2_000_000, ge=1)
    budget_resolution: int = Field(default=1, ge=1)

    # Logging
    log_level: str = Field(default="INFO")

    def resolve_supersedes_path(self) -> Optional[Path]:
        """Get the supersedes relation file, if one applies.

        An explicit ``supersedes_path`` always wins; otherwise the corpus
        root's ``supersedes.yaml`` is used when it exists.
        """
        if self.supersedes_path is not None:
            return self.supersedes_path
        candidate = self.skills_dir / "supersedes.yaml"
        if candidate.is_file():
            return candidate
        return None


# Global settings instance
settings = Settings()
