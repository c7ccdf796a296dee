"""
Shared fixtures for the companion backend tests.

External services are never called: generation is replaced by FakeGenerator,
and SDK clients are replaced with mocks inside individual tests.
"""

import asyncio
from typing import Optional

import pytest

from generation.models.base import BaseGenerationModel
from generation.types import ModelInfo
from sessions.orchestrator import Orchestrator
from sessions.session_store import SessionStore


class FakeGenerator(BaseGenerationModel):
    """In-process stand-in for a generation model."""

    provider_name = "Fake"

    def __init__(
        self,
        replies: Optional[list] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        model_name: str = "fake-model",
    ) -> None:
        self._model_name = model_name
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []
        self.models: list[ModelInfo] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    async def generate(self, messages, parameters=None, model=None) -> str:
        self.calls.append({"messages": list(messages), "parameters": parameters, "model": model})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"reply {len(self.calls)}"

    async def list_models(self) -> list[ModelInfo]:
        if self.error is not None:
            raise self.error
        return self.models


class FakePager:
    """Async-iterable stand-in for the GenAI SDK's model pager."""

    def __init__(self, items) -> None:
        self._items = list(items)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self._items:
            yield item


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def orchestrator(store, generator):
    return Orchestrator(store=store, generator=generator)
