"""
Integration tests for the companion flow.

Tests the complete end-to-end flow:
1. User message -> Gemini generation -> history commit -> JSON reply
2. Reply text -> ElevenLabs speech -> audio/mpeg
3. Reply text -> D-ID talk -> status polling until ready
4. Error scenarios: generation failures leave history untouched

External APIs are mocked at the SDK client (Gemini, ElevenLabs) or served by
a local aiohttp app (D-ID) so every layer of this codebase runs for real.
"""

from unittest.mock import AsyncMock, Mock

import pytest
from aiohttp import web
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from avatar_did import AvatarClient
from config import Settings
from generation.models.gemini import GeminiGenerationModel
from sessions.orchestrator import Orchestrator
from sessions.session_store import SessionStore
from tts_elevenlabs import SpeechClient
from web_server import create_app


def gemini_reply(text):
    return genai_types.GenerateContentResponse(
        candidates=[
            genai_types.Candidate(
                content=genai_types.Content(role="model", parts=[genai_types.Part(text=text)])
            )
        ]
    )


class FakeDidBackend:
    """Serves a talk that becomes ready on the second status poll."""

    def __init__(self):
        self.scripts = []
        self.polls = 0

    async def create_talk(self, request):
        body = await request.json()
        self.scripts.append(body["script"]["input"])
        return web.json_response({"id": "tlk_flow", "status": "created"}, status=201)

    async def get_talk(self, request):
        self.polls += 1
        if self.polls < 2:
            return web.json_response({"id": "tlk_flow", "status": "started"})
        return web.json_response(
            {"id": "tlk_flow", "status": "done", "result_url": "https://d-id.example/tlk_flow.mp4"}
        )

    def app(self):
        app = web.Application()
        app.router.add_post("/talks", self.create_talk)
        app.router.add_get("/talks/{talk_id}", self.get_talk)
        return app


@pytest.fixture
def gemini_client():
    client = Mock()
    client.aio.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def elevenlabs_client():
    client = Mock()
    client.text_to_speech.convert.side_effect = lambda **kwargs: iter([b"ID3", b"-speech"])
    return client


@pytest.fixture
def did_backend():
    return FakeDidBackend()


@pytest.fixture
async def client(aiohttp_client, aiohttp_server, gemini_client, elevenlabs_client, did_backend):
    did_server = await aiohttp_server(did_backend.app())
    orchestrator = Orchestrator(
        store=SessionStore(),
        generator=GeminiGenerationModel(model_name="gemini-flow", api_key="g", client=gemini_client),
    )
    app = create_app(
        settings=Settings(),
        orchestrator=orchestrator,
        speech_client=SpeechClient(api_key="e", client=elevenlabs_client),
        avatar_client=AvatarClient(api_key="d", base_url=str(did_server.make_url(""))),
    )
    return await aiohttp_client(app)


class TestCompanionFlow:
    """Test the full text, speech and video sequence a client performs."""

    async def test_full_flow(self, client, gemini_client, elevenlabs_client, did_backend):
        gemini_client.aio.models.generate_content.return_value = gemini_reply("Nice to meet you!")

        resp = await client.post("/api/ai-companion", json={"message": "Hi", "sessionId": "flow"})
        assert resp.status == 200
        reply = (await resp.json())["response"]
        assert reply == "Nice to meet you!"

        resp = await client.post("/api/elevenlabs/tts", json={"text": reply})
        assert resp.status == 200
        assert await resp.read() == b"ID3-speech"

        resp = await client.post("/api/d-id/create-talk", json={"text": reply})
        assert resp.status == 200
        talk_id = (await resp.json())["id"]
        assert did_backend.scripts == ["Nice to meet you!"]

        first = await (await client.get(f"/api/d-id/talk/{talk_id}")).json()
        second = await (await client.get(f"/api/d-id/talk/{talk_id}")).json()
        assert first["state"] == "pending"
        assert second["state"] == "ready"
        assert second["result_url"] == "https://d-id.example/tlk_flow.mp4"

        history = await (await client.get("/api/history/flow")).json()
        assert history["history"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Nice to meet you!"},
        ]

    async def test_history_is_sent_with_gemini_roles(self, client, gemini_client):
        gemini_client.aio.models.generate_content.side_effect = [
            gemini_reply("First answer"),
            gemini_reply("Second answer"),
        ]

        await client.post("/api/chat", json={"message": "First", "sessionId": "roles"})
        await client.post("/api/chat", json={"message": "Second", "sessionId": "roles"})

        contents = gemini_client.aio.models.generate_content.call_args.kwargs["contents"]
        assert [c.role for c in contents] == ["user", "model", "user"]
        assert [c.parts[0].text for c in contents] == ["First", "First answer", "Second"]


class TestFlowErrors:
    async def test_rate_limit_keeps_history(self, client, gemini_client):
        gemini_client.aio.models.generate_content.side_effect = [
            gemini_reply("ok"),
            genai_errors.ClientError(
                429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
            ),
        ]

        await client.post("/api/chat", json={"message": "one", "sessionId": "rl"})
        resp = await client.post("/api/chat", json={"message": "two", "sessionId": "rl"})

        assert resp.status == 500
        data = await resp.json()
        assert data["error"] == "Rate limit exceeded. Please try again in a moment."
        assert data["kind"] == "rate_limited"

        history = await (await client.get("/api/history/rl")).json()
        assert [t["content"] for t in history["history"]] == ["one", "ok"]

    async def test_blocked_prompt_is_empty_response(self, client, gemini_client):
        gemini_client.aio.models.generate_content.return_value = (
            genai_types.GenerateContentResponse(candidates=[])
        )

        resp = await client.post("/api/chat", json={"message": "something", "sessionId": "blk"})

        assert resp.status == 500
        data = await resp.json()
        assert data["error"] == "Failed to get AI response"
        assert data["kind"] == "empty_response"
