"""
Web server for the companion chat backend.

This server:
- Exposes the chat and companion endpoints backed by the Orchestrator
- Proxies text-to-speech (ElevenLabs) and talking-head rendering (D-ID)
- Reports health, model listings and Prometheus metrics
- Reports unexpected errors to Sentry when SENTRY_DSN is set
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any

import sentry_sdk
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from avatar_did import AvatarClient
from config import Settings, get_settings
from constants import (
    DEFAULT_SESSION_ID,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)
from exceptions import (
    ErrorKind,
    GenerationError,
    InvalidInputError,
    RenderError,
    ServiceError,
    SynthesisError,
)
from generation.models.gemini import GeminiGenerationModel
from logging_config import setup_logging
from metrics import track_request
from sessions.orchestrator import Orchestrator, utc_timestamp
from sessions.session_store import SessionStore
from tts_elevenlabs import SpeechClient

logger = logging.getLogger(__name__)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", Orchestrator)
SPEECH_CLIENT_KEY = web.AppKey("speech_client", SpeechClient)
AVATAR_CLIENT_KEY = web.AppKey("avatar_client", AvatarClient)

# User-facing text per failure kind; everything else gets the route's generic message
GENERATION_ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMITED: "Rate limit exceeded. Please try again in a moment.",
    ErrorKind.UNAUTHORIZED: "Invalid API key. Please check your Google API key.",
}
CHAT_FAILED_MESSAGE = "Failed to get AI response"
COMPANION_FAILED_MESSAGE = "Failed to get AI companion response"

json_response = functools.partial(
    web.json_response,
    dumps=functools.partial(json.dumps, default=str),
)


# =============================================================================
# Sentry
# =============================================================================


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Drop client mistakes; they are answered with 400 and need no alert."""
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], InvalidInputError):
        return None
    return event


def init_sentry() -> bool:
    """Initialise Sentry if a DSN is configured. Returns True when enabled."""
    if not SENTRY_DSN:
        logger.info("Sentry disabled (SENTRY_DSN not set)")
        return False

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        integrations=[AioHttpIntegration()],
        before_send=before_send,
    )
    logger.info("Sentry enabled (environment=%s)", SENTRY_ENVIRONMENT)
    return True


def add_sentry_breadcrumb(category: str, message: str, **data: Any) -> None:
    sentry_sdk.add_breadcrumb(category=category, message=message, data=data, level="info")


# =============================================================================
# Helpers
# =============================================================================


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse the request body as a JSON object; anything else reads as {}."""
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Invalid JSON received on %s: %s", request.path, e)
        return {}
    return data if isinstance(data, dict) else {}


def invalid_input_response(error: InvalidInputError) -> web.Response:
    return json_response({"error": str(error)}, status=400)


def service_error_response(error: ServiceError, message: str) -> web.Response:
    add_sentry_breadcrumb(error.service, message, kind=error.kind.value, status_code=error.status_code)
    return json_response(
        {"error": message, "details": error.details, "kind": error.kind.value},
        status=500,
    )


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@web.middleware
async def metrics_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Count every request by route template and status."""
    resource = request.match_info.route.resource
    route = resource.canonical if resource is not None else "unmatched"
    try:
        response = await handler(request)
    except web.HTTPException as e:
        track_request(route, e.status)
        raise
    except Exception:
        track_request(route, 500)
        raise
    track_request(route, response.status)
    return response


# =============================================================================
# Conversation endpoints
# =============================================================================


async def _conversation_turn(request: web.Request, flow: str) -> web.Response:
    data = await read_json(request)
    session_id = _optional_str(data.get("sessionId")) or DEFAULT_SESSION_ID
    orchestrator = request.app[ORCHESTRATOR_KEY]

    if flow == "companion":
        run, failed_message = orchestrator.companion, COMPANION_FAILED_MESSAGE
    else:
        run, failed_message = orchestrator.chat, CHAT_FAILED_MESSAGE

    try:
        reply = await run(session_id, data.get("message"))
    except InvalidInputError as e:
        return invalid_input_response(e)
    except GenerationError as e:
        logger.error("[%s] Generation failed for session %s: %r", flow.upper(), session_id, e)
        return service_error_response(e, GENERATION_ERROR_MESSAGES.get(e.kind, failed_message))

    return json_response(reply.to_dict())


async def chat_handler(request: web.Request) -> web.Response:
    """POST /api/chat {message, sessionId?}"""
    return await _conversation_turn(request, "chat")


async def companion_handler(request: web.Request) -> web.Response:
    """POST /api/ai-companion {message, sessionId?} (text only)"""
    return await _conversation_turn(request, "companion")


async def test_model_handler(request: web.Request) -> web.Response:
    """POST /api/test-model {modelName?}"""
    data = await read_json(request)
    result = await request.app[ORCHESTRATOR_KEY].probe_model(_optional_str(data.get("modelName")))
    return json_response(result, status=200 if result["success"] else 500)


async def models_handler(request: web.Request) -> web.Response:
    """GET /api/models"""
    try:
        models = await request.app[ORCHESTRATOR_KEY].list_models()
    except GenerationError as e:
        logger.error("Model listing failed: %r", e)
        return service_error_response(e, "Failed to fetch models")
    return json_response(models)


async def history_handler(request: web.Request) -> web.Response:
    """GET /api/history/{session_id}"""
    session_id = request.match_info["session_id"]
    return json_response({"history": request.app[ORCHESTRATOR_KEY].history(session_id)})


async def clear_history_handler(request: web.Request) -> web.Response:
    """DELETE /api/history/{session_id}"""
    session_id = request.match_info["session_id"]
    await request.app[ORCHESTRATOR_KEY].clear(session_id)
    return json_response({"message": "Conversation history cleared", "sessionId": session_id})


async def health_handler(request: web.Request) -> web.Response:
    """GET /health"""
    return json_response(
        {
            "status": "OK",
            "model": request.app[ORCHESTRATOR_KEY].model_name,
            "timestamp": utc_timestamp(),
        }
    )


# =============================================================================
# Speech and avatar endpoints
# =============================================================================


async def create_talk_handler(request: web.Request) -> web.Response:
    """POST /api/d-id/create-talk {text, source_url?}"""
    data = await read_json(request)
    try:
        handle = await request.app[AVATAR_CLIENT_KEY].render(
            data.get("text"), _optional_str(data.get("source_url"))
        )
    except InvalidInputError as e:
        return invalid_input_response(e)
    except RenderError as e:
        return service_error_response(e, "Failed to create D-ID talk")
    return json_response(handle.raw)


async def talk_status_handler(request: web.Request) -> web.Response:
    """GET /api/d-id/talk/{talk_id}"""
    try:
        status = await request.app[AVATAR_CLIENT_KEY].poll_status(request.match_info["talk_id"])
    except RenderError as e:
        return service_error_response(e, "Failed to get D-ID talk status")
    return json_response(status.to_dict())


async def tts_handler(request: web.Request) -> web.Response:
    """POST /api/elevenlabs/tts {text, voice_id?} -> audio/mpeg"""
    data = await read_json(request)
    try:
        audio = await request.app[SPEECH_CLIENT_KEY].synthesize(
            data.get("text"), _optional_str(data.get("voice_id"))
        )
    except InvalidInputError as e:
        return invalid_input_response(e)
    except SynthesisError as e:
        return service_error_response(e, "Failed to generate speech")
    return web.Response(body=audio, content_type="audio/mpeg")


async def metrics_handler(request: web.Request) -> web.Response:
    """GET /metrics (Prometheus exposition format)"""
    return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})


# =============================================================================
# App factory
# =============================================================================


async def _close_clients(app: web.Application) -> None:
    await app[AVATAR_CLIENT_KEY].close()


def create_app(
    settings: Settings | None = None,
    orchestrator: Orchestrator | None = None,
    speech_client: SpeechClient | None = None,
    avatar_client: AvatarClient | None = None,
) -> web.Application:
    """
    Create and configure the web application.

    Collaborators default to the real clients built from settings; tests pass
    their own.
    """
    settings = settings or get_settings()

    if orchestrator is None:
        orchestrator = Orchestrator(
            store=SessionStore(),
            generator=GeminiGenerationModel(
                model_name=settings.gemini_model,
                api_key=settings.google_api_key,
            ),
        )
    if speech_client is None:
        speech_client = SpeechClient(
            api_key=settings.elevenlabs_api_key,
            default_voice_id=settings.elevenlabs_voice_id,
        )
    if avatar_client is None:
        avatar_client = AvatarClient(
            api_key=settings.d_id_api_key,
            default_source_url=settings.d_id_source_url,
        )

    app = web.Application(middlewares=[metrics_middleware])
    app[ORCHESTRATOR_KEY] = orchestrator
    app[SPEECH_CLIENT_KEY] = speech_client
    app[AVATAR_CLIENT_KEY] = avatar_client
    app.on_cleanup.append(_close_clients)

    app.router.add_post("/api/chat", chat_handler)
    app.router.add_post("/api/ai-companion", companion_handler)
    app.router.add_post("/api/test-model", test_model_handler)
    app.router.add_get("/api/models", models_handler)
    app.router.add_get("/api/history/{session_id}", history_handler)
    app.router.add_delete("/api/history/{session_id}", clear_history_handler)
    app.router.add_get("/health", health_handler)
    app.router.add_post("/api/d-id/create-talk", create_talk_handler)
    app.router.add_get("/api/d-id/talk/{talk_id}", talk_status_handler)
    app.router.add_post("/api/elevenlabs/tts", tts_handler)
    app.router.add_get("/metrics", metrics_handler)

    return app


def warn_missing_credentials(app: web.Application, settings: Settings) -> list[str]:
    """Log each service key that is absent. Returns the missing names."""
    missing = []
    if not settings.google_api_key:
        missing.append("GOOGLE_API_KEY")
    if not app[SPEECH_CLIENT_KEY].is_enabled():
        missing.append("ELEVENLABS_API_KEY")
    if not app[AVATAR_CLIENT_KEY].api_key:
        missing.append("D_ID_API_KEY")

    for name in missing:
        logger.warning("%s is not set; calls needing it will fail as unauthorized", name)
    return missing


def main() -> None:
    """Start the web server."""
    setup_logging()
    init_sentry()
    settings = get_settings()
    app = create_app(settings)
    warn_missing_credentials(app, settings)

    logger.info("Starting server on http://%s:%d", settings.host, settings.port)
    logger.info("Using model: %s", settings.gemini_model)
    web.run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
