"""
Model wrappers for text-generation providers.

Gemini is the only provider the companion backend talks to.
"""

from generation.models.base import BaseGenerationModel
from generation.models.gemini import GeminiGenerationModel

__all__ = [
    "BaseGenerationModel",
    "GeminiGenerationModel",
]
