"""
Turn Builder Module

Turns a session's history plus the incoming user message into the ordered
message sequence sent to the generation model.
"""

from __future__ import annotations

from collections.abc import Iterable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from exceptions import InvalidInputError
from sessions.session_store import Turn


def validate_message(message: object, field: str = "message") -> str:
    """
    Check that a client-supplied message carries text.

    Args:
        message: Raw value from the request body
        field: Field name reported in the error

    Returns:
        The message unchanged

    Raises:
        InvalidInputError: If the message is missing, not a string, or blank
    """
    if not isinstance(message, str) or not message.strip():
        raise InvalidInputError(field, f"{field.capitalize()} is required")
    return message


def turn_to_message(turn: Turn) -> BaseMessage:
    if turn.role == "user":
        return HumanMessage(content=turn.content)
    return AIMessage(content=turn.content)


def build_messages(history: Iterable[Turn], message: str) -> list[BaseMessage]:
    """
    Build the prompt for one generation call.

    Args:
        history: The session's turns, oldest first
        message: The new user message

    Returns:
        One message per historical turn followed by the new user message

    Raises:
        InvalidInputError: If the new message is empty or whitespace-only
    """
    validate_message(message)
    messages = [turn_to_message(turn) for turn in history]
    messages.append(HumanMessage(content=message))
    return messages
