"""
Generation - text-generation client layer for the companion backend.

Wraps the external text-generation service behind a small async interface
that accepts a LangChain message sequence and returns the reply text or a
classified GenerationError.
"""

from generation.models.base import BaseGenerationModel
from generation.types import GenerationParameters, ModelInfo, SafetySetting

__all__ = [
    "BaseGenerationModel",
    "GenerationParameters",
    "ModelInfo",
    "SafetySetting",
]

__version__ = "0.1.0"
