"""
Google Gemini model wrapper.

Sends a LangChain message sequence to ``generateContent`` through the
official Google GenAI SDK (async client) and classifies failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from langchain_core.messages import BaseMessage

from constants import DEFAULT_GEMINI_MODEL, GENERATION_TIMEOUT_SECONDS
from exceptions import ErrorKind, GenerationError, classify_status
from generation.models.base import BaseGenerationModel
from generation.types import GenerationParameters, ModelInfo
from metrics import track_generation_call

logger = logging.getLogger(__name__)

GENERATE_CONTENT_ACTION = "generateContent"


def _message_text(message: BaseMessage) -> str:
    content = message.content
    return content if isinstance(content, str) else str(content)


def to_gemini_contents(messages: Sequence[BaseMessage]) -> list[genai_types.Content]:
    """Map LangChain messages to Gemini contents (assistant turns use role "model")."""
    contents = []
    for message in messages:
        role = "user" if message.type == "human" else "model"
        contents.append(
            genai_types.Content(role=role, parts=[genai_types.Part(text=_message_text(message))])
        )
    return contents


def _is_invalid_api_key(error: genai_errors.APIError) -> bool:
    # Gemini answers a bad key with 400 INVALID_ARGUMENT rather than 401
    return "API_KEY_INVALID" in str(error.details) or "API key not valid" in (error.message or "")


class GeminiGenerationModel(BaseGenerationModel):
    """Async adapter for Gemini ``generateContent``."""

    provider_name = "Gemini"

    def __init__(
        self,
        model_name: str = DEFAULT_GEMINI_MODEL,
        api_key: str | None = None,
        parameters: GenerationParameters | None = None,
        timeout: float = GENERATION_TIMEOUT_SECONDS,
        client: genai.Client | None = None,
    ) -> None:
        """
        Args:
            model_name: Default model id
            api_key: Google API key (falls back to GOOGLE_API_KEY)
            parameters: Default generation parameters
            timeout: Deadline in seconds for each upstream call
            client: Pre-built SDK client (tests inject a mock here)
        """
        self._model_name = model_name
        self.api_key = api_key
        self.parameters = parameters or GenerationParameters()
        self.timeout = timeout
        self._client = client

    @property
    def model_name(self) -> str:
        return self._model_name

    def _get_client(self) -> genai.Client:
        # Built lazily so the server can start (and /health answer) without a key
        if self._client is None:
            self._client = genai.Client(api_key=self._get_api_key("GOOGLE_API_KEY"))
        return self._client

    def _build_generation_config(
        self, parameters: GenerationParameters
    ) -> genai_types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {
            "temperature": parameters.temperature,
            "max_output_tokens": parameters.max_output_tokens,
        }
        if parameters.top_p is not None:
            config_kwargs["top_p"] = parameters.top_p
        if parameters.top_k is not None:
            config_kwargs["top_k"] = parameters.top_k
        if parameters.safety_settings:
            config_kwargs["safety_settings"] = [
                genai_types.SafetySetting(category=s.category, threshold=s.threshold)
                for s in parameters.safety_settings
            ]
        return genai_types.GenerateContentConfig(**config_kwargs)

    def _classify_provider_error(self, exception: Exception) -> GenerationError | None:
        if not isinstance(exception, genai_errors.APIError):
            return None

        kind = classify_status(exception.code, not_found=ErrorKind.MODEL_UNAVAILABLE)
        if kind is ErrorKind.UPSTREAM_ERROR and _is_invalid_api_key(exception):
            kind = ErrorKind.UNAUTHORIZED

        detail = exception.message or str(exception)
        return GenerationError(
            kind,
            f"Gemini API call failed ({exception.code}): {detail}",
            details=detail,
            status_code=exception.code,
        )

    def _extract_text(self, response: Any) -> str:
        candidates = getattr(response, "candidates", None)
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            raise GenerationError(
                ErrorKind.EMPTY_RESPONSE,
                "Gemini response contained no candidates",
                details=str(feedback) if feedback else None,
            )

        content = candidates[0].content
        parts = content.parts if content is not None else None
        text = parts[0].text if parts else None
        if not text:
            finish_reason = getattr(candidates[0], "finish_reason", None)
            raise GenerationError(
                ErrorKind.EMPTY_RESPONSE,
                "Gemini response did not contain any text",
                details=f"finish_reason={finish_reason}" if finish_reason else None,
            )
        return text

    async def generate(
        self,
        messages: Sequence[BaseMessage],
        parameters: GenerationParameters | None = None,
        model: str | None = None,
    ) -> str:
        model_name = model or self._model_name
        config = self._build_generation_config(parameters or self.parameters)
        contents = to_gemini_contents(messages)
        client = self._get_client()

        logger.debug("Calling %s with %d message(s)", model_name, len(contents))
        try:
            with track_generation_call(model_name):
                response = await asyncio.wait_for(
                    client.aio.models.generate_content(
                        model=model_name,
                        contents=contents,
                        config=config,
                    ),
                    timeout=self.timeout,
                )
        except Exception as e:
            raise self._handle_api_error(e) from e

        try:
            return self._extract_text(response)
        except GenerationError:
            raise
        except (AttributeError, IndexError, TypeError) as e:
            raise GenerationError(
                ErrorKind.UPSTREAM_ERROR,
                "Unexpected response format from Gemini",
                details=str(e),
            ) from e

    async def list_models(self) -> list[ModelInfo]:
        client = self._get_client()

        async def collect() -> list[Any]:
            pager = await client.aio.models.list()
            return [model async for model in pager]

        try:
            models = await asyncio.wait_for(collect(), timeout=self.timeout)
        except Exception as e:
            raise self._handle_api_error(e) from e

        return [
            ModelInfo(
                name=(model.name or "").split("/")[-1],
                display_name=model.display_name,
                description=model.description,
            )
            for model in models
            if GENERATE_CONTENT_ACTION in (model.supported_actions or [])
        ]
