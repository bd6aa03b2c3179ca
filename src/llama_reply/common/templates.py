"""Prompt templating helpers."""
from __future__ import annotations

USER_TAG = "User:"
ASSISTANT_TAG = "Assistant:"

def build_prompt(message: str, preprompt: str = "") -> str:
    """
    Frame a user message as a single chat turn.

    The `User:` / `Assistant:` tags are the same literals the stop detector
    and the response cleaner look for.

    Args:
        message: User message.
        preprompt: Optional system preamble; ignored when blank.

    Returns:
        Prompt text ending with the assistant tag.
    """
    turn = f"{USER_TAG} {message}\n{ASSISTANT_TAG}"
    if preprompt and preprompt.strip():
        return f"{preprompt.strip()}\n\n{turn}"
    return turn
