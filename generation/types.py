"""
Data types for the generation layer.

- SafetySetting: content-filter threshold for one harm category
- GenerationParameters: sampling and filtering options for one call
- ModelInfo: a model advertised by the provider as able to generate content
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from constants import (
    DEFAULT_SAFETY_THRESHOLDS,
    GENERATION_MAX_OUTPUT_TOKENS,
    GENERATION_TEMPERATURE,
    GENERATION_TOP_K,
    GENERATION_TOP_P,
)


class SafetySetting(BaseModel):
    """Block threshold for a single harm category."""

    model_config = ConfigDict(frozen=True)

    category: str
    threshold: str


def default_safety_settings() -> list[SafetySetting]:
    return [
        SafetySetting(category=category, threshold=threshold)
        for category, threshold in DEFAULT_SAFETY_THRESHOLDS.items()
    ]


class GenerationParameters(BaseModel):
    """
    Options for a generation call.

    Attributes:
        temperature: Randomness of sampling
        max_output_tokens: Hard cap on response length
        top_p: Nucleus sampling breadth (None leaves the provider default)
        top_k: Top-k sampling breadth (None leaves the provider default)
        safety_settings: Content-filter sensitivity per category
    """

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=GENERATION_TEMPERATURE, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=GENERATION_MAX_OUTPUT_TOKENS, gt=0)
    top_p: float | None = Field(default=GENERATION_TOP_P, ge=0.0, le=1.0)
    top_k: int | None = Field(default=GENERATION_TOP_K, gt=0)
    safety_settings: list[SafetySetting] = Field(default_factory=default_safety_settings)

    def with_overrides(self, **overrides: Any) -> GenerationParameters:
        """Return a copy with the given fields replaced (validated)."""
        data = self.model_dump()
        data.update(overrides)
        return GenerationParameters(**data)


@dataclass(frozen=True)
class ModelInfo:
    """A generation-capable model as reported by the provider."""

    name: str
    display_name: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
        }
