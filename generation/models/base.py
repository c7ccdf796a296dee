"""
Base class for text-generation model wrappers.

This module defines the interface the orchestrator relies on and the shared
failure classification every provider wrapper uses.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from collections.abc import Sequence

from langchain_core.messages import BaseMessage

from exceptions import ErrorKind, GenerationError
from generation.types import GenerationParameters, ModelInfo


class BaseGenerationModel(ABC):
    """
    Abstract base class for text-generation providers.

    Subclasses must implement:
    - generate(): produce reply text for a message sequence
    - list_models(): list models that support generation
    - model_name: the default model id

    Provides shared functionality:
    - _get_api_key(): resolve API key from instance or environment
    - _handle_api_error(): turn any failure into a classified GenerationError
    """

    provider_name = "LLM"
    api_key: str | None = None
    timeout: float = 30.0

    def _get_api_key(self, env_var_name: str) -> str:
        """
        Resolve API key from instance attribute or environment variable.

        Args:
            env_var_name: Name of environment variable to check (e.g., "GOOGLE_API_KEY")

        Returns:
            The resolved key

        Raises:
            GenerationError: UNAUTHORIZED if no key is configured
        """
        resolved_key = self.api_key or os.getenv(env_var_name)
        if not resolved_key:
            raise GenerationError(
                ErrorKind.UNAUTHORIZED,
                f"{env_var_name} is not configured for {self.provider_name} models.",
            )
        return resolved_key

    def _classify_provider_error(self, exception: Exception) -> GenerationError | None:
        """Hook for SDK-specific errors. Return None to use the generic mapping."""
        return None

    def _handle_api_error(self, exception: Exception) -> GenerationError:
        """
        Classify a failed call.

        - GenerationError is returned unchanged
        - asyncio/builtin timeouts become TIMEOUT
        - SDK errors are classified by _classify_provider_error
        - anything else becomes UPSTREAM_ERROR

        Args:
            exception: The caught exception

        Returns:
            The GenerationError to raise (chained by the caller)
        """
        if isinstance(exception, GenerationError):
            return exception

        if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
            return GenerationError(
                ErrorKind.TIMEOUT,
                f"{self.provider_name} API request timed out after {self.timeout:g}s",
            )

        classified = self._classify_provider_error(exception)
        if classified is not None:
            return classified

        return GenerationError(
            ErrorKind.UPSTREAM_ERROR,
            f"{self.provider_name} API call failed: {exception.__class__.__name__}: {exception}",
            details=str(exception),
        )

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Default model id used when a call does not name one."""

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[BaseMessage],
        parameters: GenerationParameters | None = None,
        model: str | None = None,
    ) -> str:
        """
        Generate the next assistant message.

        Args:
            messages: Conversation so far, ending with the new user message
            parameters: Sampling options (defaults to the wrapper's own)
            model: Model id override for this call

        Returns:
            Text of the first candidate

        Raises:
            GenerationError: Classified failure (see ErrorKind)
        """

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return models that support content generation."""
