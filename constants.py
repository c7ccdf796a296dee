"""
Project-wide constants.

Centralizes magic numbers and configuration values for maintainability.
Secrets are not kept here; see config.get_settings().
"""

from __future__ import annotations

import os
from typing import Final

# =============================================================================
# Conversation History
# =============================================================================
MAX_HISTORY_TURNS: Final[int] = 8  # Sliding window, counted in single turns (4 pairs)
DEFAULT_SESSION_ID: Final[str] = "default"

# =============================================================================
# Generation (Gemini) Configuration
# =============================================================================
DEFAULT_GEMINI_MODEL: Final[str] = "gemini-2.0-flash-001"
GENERATION_TEMPERATURE: Final[float] = 0.7
GENERATION_MAX_OUTPUT_TOKENS: Final[int] = 2048
GENERATION_TOP_P: Final[float] = 0.8
GENERATION_TOP_K: Final[int] = 40
GENERATION_TIMEOUT_SECONDS: Final[float] = 30.0

# Content filter sensitivity per harm category
DEFAULT_SAFETY_THRESHOLDS: Final[dict[str, str]] = {
    "HARM_CATEGORY_HARASSMENT": "BLOCK_MEDIUM_AND_ABOVE",
    "HARM_CATEGORY_HATE_SPEECH": "BLOCK_MEDIUM_AND_ABOVE",
}

# Single-shot probe used by /api/test-model
MODEL_PROBE_PROMPT: Final[str] = "Hello! Say something short."
MODEL_PROBE_MAX_OUTPUT_TOKENS: Final[int] = 50

RECOMMENDED_MODELS: Final[tuple[str, ...]] = (
    "gemini-2.0-flash-001",
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-pro-latest",
)

# =============================================================================
# Text-to-Speech (ElevenLabs)
# =============================================================================
ELEVENLABS_DEFAULT_VOICE_ID: Final[str] = "EXAVITQu4vr4xnSDxMaL"
ELEVENLABS_MODEL_ID: Final[str] = "eleven_monolingual_v1"
ELEVENLABS_OUTPUT_FORMAT: Final[str] = "mp3_44100_128"
ELEVENLABS_STABILITY: Final[float] = 0.5
ELEVENLABS_SIMILARITY_BOOST: Final[float] = 0.5
TTS_TIMEOUT_SECONDS: Final[float] = 30.0

# =============================================================================
# Talking-head Video (D-ID)
# =============================================================================
D_ID_API_URL: Final[str] = "https://api.d-id.com"
D_ID_DEFAULT_SOURCE_URL: Final[str] = "presenter_1"
D_ID_PAD_AUDIO: Final[float] = 0.1
RENDER_TIMEOUT_SECONDS: Final[float] = 30.0

# =============================================================================
# Server Configuration
# =============================================================================
DEFAULT_SERVER_HOST: Final[str] = "0.0.0.0"
DEFAULT_SERVER_PORT: Final[int] = 3000

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL_PRODUCTION: Final[str] = "INFO"
LOG_LEVEL_DEVELOPMENT: Final[str] = "DEBUG"
LOG_FORMAT_JSON: Final[bool] = True  # Set to False for development readable format

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================
# Read from environment variable (optional - Sentry disabled if not set)
SENTRY_DSN: Final[str | None] = os.getenv("SENTRY_DSN")
SENTRY_ENVIRONMENT: Final[str] = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE: Final[float] = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))
