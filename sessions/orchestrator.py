"""
Orchestrator Module

Coordinates one conversational request:

    Received -> Building -> Generating -> Committing -> Done
                                 `-> Failed

- TurnBuilder: prompt construction from session history
- GenerationModel: the external text-generation call
- SessionStore: history commit and trimming after a successful generation

Nothing is committed unless generation succeeds, so a failed request leaves
the session's history exactly as it was. Speech and avatar rendering are
separate operations (see tts_elevenlabs and avatar_did) and are not chained
here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import HumanMessage

from constants import (
    DEFAULT_SESSION_ID,
    MODEL_PROBE_MAX_OUTPUT_TOKENS,
    MODEL_PROBE_PROMPT,
    RECOMMENDED_MODELS,
)
from exceptions import GenerationError
from generation.models.base import BaseGenerationModel
from generation.types import GenerationParameters
from logging_config import session_logger
from metrics import track_error, update_active_sessions
from sessions.session_store import SessionStore
from sessions.turn_builder import build_messages

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ChatReply:
    """Result of a successful chat or companion turn."""

    response: str
    session_id: str
    model: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        return {
            "response": self.response,
            "sessionId": self.session_id,
            "model": self.model,
            "timestamp": self.timestamp,
        }


class Orchestrator:
    """
    Composes turn building, generation and history commit.

    The generation call runs outside the session lock; only the commit is
    serialized. Two concurrent requests on one session therefore see the same
    prior history and are committed one pair at a time in completion order.
    """

    def __init__(
        self,
        store: SessionStore,
        generator: BaseGenerationModel,
        parameters: GenerationParameters | None = None,
        recommended_models: tuple[str, ...] = RECOMMENDED_MODELS,
    ) -> None:
        """
        Args:
            store: Conversation history store
            generator: Text-generation model wrapper
            parameters: Generation parameters for chat turns
            recommended_models: Static list reported by list_models()
        """
        self.store = store
        self.generator = generator
        self.parameters = parameters or GenerationParameters()
        self.recommended_models = recommended_models

    @property
    def model_name(self) -> str:
        return self.generator.model_name

    async def chat(self, session_id: str | None, message: str) -> ChatReply:
        """
        Run one chat turn.

        Args:
            session_id: Conversation key (defaults to "default")
            message: The user's message

        Returns:
            The assistant reply with session metadata

        Raises:
            InvalidInputError: If the message is empty (nothing is sent upstream)
            GenerationError: If generation fails (history is left unchanged)
        """
        return await self._run_turn(session_id or DEFAULT_SESSION_ID, message, flow="chat")

    async def companion(self, session_id: str | None, message: str) -> ChatReply:
        """
        Run the text step of the companion flow.

        Same contract as chat(); audio and video are requested separately by
        the caller using the returned text.
        """
        return await self._run_turn(session_id or DEFAULT_SESSION_ID, message, flow="companion")

    async def _run_turn(self, session_id: str, message: str, flow: str) -> ChatReply:
        log = session_logger(logger, session_id, model=self.model_name, flow=flow)

        messages = build_messages(self.store.get(session_id), message)
        log.debug_event("turn_building", "Built prompt", message_count=len(messages))

        try:
            reply = await self.generator.generate(messages, self.parameters)
        except GenerationError as e:
            track_error(e.service, e.kind.value)
            log.warning_event(
                "generation_failed",
                f"Generation failed: {e}",
                kind=e.kind.value,
                status_code=e.status_code,
            )
            raise

        await self.store.append(session_id, message, reply)
        update_active_sessions(len(self.store))
        log.info_event(
            "turn_committed",
            "Turn committed",
            history_length=len(self.store.get(session_id)),
        )

        return ChatReply(
            response=reply,
            session_id=session_id,
            model=self.model_name,
            timestamp=utc_timestamp(),
        )

    async def probe_model(self, model_name: str | None = None) -> dict[str, Any]:
        """
        Send a short fixed prompt to a model without touching any session.

        Returns:
            {"success": True, "model", "response"} or
            {"success": False, "model", "error", "kind"}
        """
        model = model_name or self.model_name
        parameters = self.parameters.with_overrides(max_output_tokens=MODEL_PROBE_MAX_OUTPUT_TOKENS)
        try:
            text = await self.generator.generate(
                [HumanMessage(content=MODEL_PROBE_PROMPT)],
                parameters,
                model=model,
            )
        except GenerationError as e:
            track_error(e.service, e.kind.value)
            logger.warning("Model probe failed for %s: %s", model, e)
            return {
                "success": False,
                "model": model,
                "error": e.details,
                "kind": e.kind.value,
            }

        logger.info("Model probe succeeded for %s", model)
        return {"success": True, "model": model, "response": text}

    async def list_models(self) -> dict[str, Any]:
        """
        Describe the current model and the provider's generation-capable models.

        Raises:
            GenerationError: If the provider's model listing fails
        """
        models = await self.generator.list_models()
        return {
            "currentModel": self.model_name,
            "availableChatModels": [model.to_dict() for model in models],
            "recommendedModels": list(self.recommended_models),
        }

    def history(self, session_id: str) -> list[dict[str, str]]:
        """Return the session's turns as plain dicts (empty if unseen)."""
        return [turn.to_dict() for turn in self.store.get(session_id)]

    async def clear(self, session_id: str) -> None:
        await self.store.clear(session_id)
        update_active_sessions(len(self.store))
        logger.info("Cleared history for session %s", session_id)
