"""
D-ID talking-head rendering.

Rendering is asynchronous upstream: render() submits a talk and returns a
handle at once, poll_status() reports whether the video is ready. Neither
call waits for the video itself and neither retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import aiohttp

from constants import D_ID_API_URL, D_ID_DEFAULT_SOURCE_URL, D_ID_PAD_AUDIO, RENDER_TIMEOUT_SECONDS
from exceptions import ErrorKind, RenderError, classify_status
from metrics import track_error, track_render_call
from sessions.turn_builder import validate_message

logger = logging.getLogger(__name__)

RenderState = Literal["pending", "ready", "failed"]

PENDING_STATUSES = frozenset({"created", "started"})
FAILED_STATUSES = frozenset({"error", "rejected"})


@dataclass(frozen=True)
class RenderHandle:
    """Reference to a submitted talk."""

    talk_id: str
    status: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderStatus:
    """Normalized status of a talk."""

    talk_id: str
    state: RenderState
    result_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**self.raw, "id": self.talk_id, "state": self.state, "result_url": self.result_url}


def to_render_state(status: str | None) -> RenderState:
    if status == "done":
        return "ready"
    if status in FAILED_STATUSES:
        return "failed"
    # created, started, and anything D-ID adds later
    return "pending"


async def _read_payload(response: aiohttp.ClientResponse) -> Any:
    text = await response.text()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class AvatarClient:
    """Creates and polls D-ID talks over HTTP."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = D_ID_API_URL,
        default_source_url: str = D_ID_DEFAULT_SOURCE_URL,
        timeout: float = RENDER_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Args:
            api_key: D-ID API key, sent as Basic credentials
            base_url: D-ID API root
            default_source_url: Presenter image used when a request names none
            timeout: Deadline in seconds for each call
            session: Shared aiohttp session (created lazily if omitted)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_source_url = default_source_url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise RenderError(ErrorKind.UNAUTHORIZED, "D_ID_API_KEY is not configured.")
        return {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            headers = self._headers()
            with track_render_call(operation):
                async with self._get_session().request(
                    method,
                    url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    body = await _read_payload(response)
                    if response.status >= 400:
                        raise RenderError(
                            classify_status(response.status),
                            f"D-ID {operation} failed ({response.status})",
                            details=body,
                            status_code=response.status,
                        )
        except RenderError as e:
            track_error(e.service, e.kind.value)
            logger.error("D-ID %s failed: %s", operation, e)
            raise
        except asyncio.TimeoutError as e:
            track_error("avatar", ErrorKind.TIMEOUT.value)
            raise RenderError(
                ErrorKind.TIMEOUT,
                f"D-ID did not respond within {self.timeout:g}s",
            ) from e
        except aiohttp.ClientError as e:
            track_error("avatar", ErrorKind.UPSTREAM_ERROR.value)
            raise RenderError(
                ErrorKind.UPSTREAM_ERROR,
                f"D-ID request failed: {e.__class__.__name__}: {e}",
                details=str(e),
            ) from e

        if not isinstance(body, dict):
            track_error("avatar", ErrorKind.UPSTREAM_ERROR.value)
            raise RenderError(
                ErrorKind.UPSTREAM_ERROR,
                "Unexpected response format from D-ID",
                details=body,
            )
        return body

    async def render(self, text: str, source_url: str | None = None) -> RenderHandle:
        """
        Submit a talking-head render.

        Args:
            text: Script the presenter speaks
            source_url: Presenter image url (defaults to the configured one)

        Returns:
            Handle for poll_status()

        Raises:
            InvalidInputError: If text is empty
            RenderError: If the submission fails
        """
        validate_message(text, field="text")
        payload = {
            "script": {"type": "text", "input": text},
            "source": {"type": "image", "url": source_url or self.default_source_url},
            "config": {"fluent": True, "pad_audio": D_ID_PAD_AUDIO},
        }
        body = await self._request("POST", "/talks", "create", payload)

        talk_id = body.get("id")
        if not talk_id:
            track_error("avatar", ErrorKind.EMPTY_RESPONSE.value)
            raise RenderError(
                ErrorKind.EMPTY_RESPONSE,
                "D-ID response did not include a talk id",
                details=body,
            )
        logger.info("Created D-ID talk %s", talk_id)
        return RenderHandle(talk_id=str(talk_id), status=body.get("status"), raw=body)

    async def poll_status(self, talk_id: str) -> RenderStatus:
        """
        Query the status of a talk.

        Args:
            talk_id: Id from RenderHandle.talk_id

        Returns:
            pending, ready (with result_url) or failed
        """
        validate_message(talk_id, field="id")
        body = await self._request("GET", f"/talks/{talk_id}", "status")
        state = to_render_state(body.get("status"))
        logger.debug("D-ID talk %s is %s", talk_id, state)
        return RenderStatus(
            talk_id=talk_id,
            state=state,
            result_url=body.get("result_url") if state == "ready" else None,
            raw=body,
        )
