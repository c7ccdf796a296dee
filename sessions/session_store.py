"""
Session Store Module

In-memory conversation history keyed by caller-chosen session id.

- Sessions are created lazily on first append; reading an unseen id returns
  an empty history.
- History is a sliding window of at most ``max_turns`` turns; the oldest
  turns are dropped first.
- Turns are appended as user/assistant pairs and never mutated.
- Writes to one session are serialized by a per-session asyncio.Lock. The raw
  map is never handed out; readers get an immutable snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Literal

from constants import MAX_HISTORY_TURNS

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """One role-tagged message in a conversation."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class SessionStore:
    """
    Process-lifetime store of conversation histories.

    Thread Safety:
        Intended for a single event loop. ``append`` and ``clear`` hold the
        session's lock for their whole read-modify-write, so concurrent
        completions on one session never lose or duplicate a turn.
    """

    def __init__(self, max_turns: int = MAX_HISTORY_TURNS) -> None:
        """
        Args:
            max_turns: Maximum turns kept per session. Must hold at least one pair.
        """
        if max_turns < 2:
            raise ValueError(f"max_turns must be at least 2, got {max_turns}")
        self.max_turns = max_turns
        self._histories: dict[str, tuple[Turn, ...]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        # setdefault is the get-or-create step; no await between check and insert
        return self._locks.setdefault(session_id, asyncio.Lock())

    def get(self, session_id: str) -> tuple[Turn, ...]:
        """Return the session's turns oldest first (empty if unseen)."""
        return self._histories.get(session_id, ())

    async def append(self, session_id: str, user_text: str, assistant_text: str) -> None:
        """
        Append a user/assistant pair and trim to the most recent turns.

        Args:
            session_id: Session key (created if unseen)
            user_text: The user's message
            assistant_text: The generated reply
        """
        async with self._lock_for(session_id):
            history = self._histories.get(session_id, ())
            updated = history + (
                Turn(role="user", content=user_text),
                Turn(role="assistant", content=assistant_text),
            )
            dropped = len(updated) - self.max_turns
            if dropped > 0:
                updated = updated[dropped:]
                logger.debug("Trimmed %d turn(s) from session %s", dropped, session_id)
            self._histories[session_id] = updated

    async def clear(self, session_id: str) -> None:
        """Remove all history for a session. No-op if the session is unknown."""
        if session_id not in self._locks and session_id not in self._histories:
            return
        async with self._lock_for(session_id):
            self._histories.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._histories)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._histories
