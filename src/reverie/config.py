"""
Configuration for reverie ranking.

Tunable constants are read from environment variables prefixed with
``REVERIE_`` and fall back to the documented defaults below.
"""

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.logging import RichHandler


class ReverieSettings(BaseSettings):
    """Ranking weights, caps and budgets."""

    model_config = SettingsConfigDict(env_prefix="REVERIE_", frozen=True)

    # Blend weights
    semantic_weight: float = Field(
        default=0.55, ge=0.0, le=1.0, description="Weight of the semantic component"
    )
    keyword_weight: float = Field(
        default=0.25, ge=0.0, le=1.0, description="Weight of the keyword component"
    )
    recency_weight: float = Field(
        default=0.10, ge=0.0, le=1.0, description="Weight of the recency component"
    )
    importance_weight: float = Field(
        default=0.10, ge=0.0, le=1.0, description="Weight of the importance component"
    )

    # Normalization
    keyword_smoothing: float = Field(
        default=100.0,
        gt=0.0,
        description="Keyword score at which the keyword component reaches 0.5",
    )
    importance_divisor: float = Field(
        default=20.0, gt=0.0, description="Divisor mapping importance scores into [0, 1]"
    )
    recency_decay_lambda: float = Field(
        default=0.05, ge=0.0, description="Per-day exponential decay (~14 day half-life)"
    )

    # Caps and budgets
    max_insights_per_conversation: int = Field(default=5, ge=0)
    excerpt_max_chars: int = Field(default=360, gt=0)
    compact_max_chars: int = Field(default=6000, gt=0)
    compact_max_messages: int = Field(default=50, gt=0)
    compact_segment_window: int = Field(default=200, gt=0)
    composite_query_max_chars: int = Field(default=2000, gt=0)

    language: str = Field(default="english", description="Stemmer and stop-word language")

    @model_validator(mode="after")
    def _check_weight_total(self) -> "ReverieSettings":
        total = (
            self.semantic_weight
            + self.keyword_weight
            + self.recency_weight
            + self.importance_weight
        )
        # Small tolerance for float addition of the defaults
        if total > 1.0 + 1e-9:
            raise ValueError(f"blend weights must sum to at most 1.0, got {total:.4f}")
        return self


@lru_cache(maxsize=1)
def get_settings() -> ReverieSettings:
    """Get the default settings (cached)."""
    return ReverieSettings()


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Route reverie log records to a rich console handler.

    Safe to call more than once; the handler is installed only once.
    """
    logger = logging.getLogger("reverie")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger
