"""Simple message lookup for status responses.

Every user-visible status string lives here so the HTTP adapter, the CLI and
the agent report the same wording.
"""

from __future__ import annotations

_MESSAGES: dict[str, str] = {
    "error.prompt_required": "Prompt and userId are required",
    "error.history_required": "Limit and userId are required",
    "error.user_required": "UserId is required",
    "error.channel_not_found": "That conversation does not exist",
    "error.inference_failed": "Ollama processing failed.",
    "error.store_failed": "Memory store is unavailable.",
    "error.tts_failed": "Fish-speech processing failed.",
    "error.rvc_failed": "RVC processing failed.",
    "gate.declined": "Ollama determined not to respond",
    "session.debounced": "Superseded by a newer voice input",
    "session.busy": "Still responding; your message was remembered",
    "history.deleted": "Conversation was deleted",
    "error.agent_not_ready": "Service is starting up. Please try again in a moment.",
}


def msg(key: str) -> str:
    """Return a message by key, or the key itself if not found."""
    return _MESSAGES.get(key, key)
