"""
Error Taxonomy

Every failure that crosses the front-end boundary is a PersonaAgentError
carrying the status code the adapters report. GateDeclined lives here too
although it is a normal outcome: it lets a voice turn unwind with a 204.

Usage:
    from persona_agent.errors import ValidationError

    if not request.prompt:
        raise ValidationError(msg("error.prompt_required"))
"""

from typing import Optional

from persona_agent.messages import msg


class PersonaAgentError(Exception):
    """Base class for errors reported as a status/message pair."""

    status_code = 500
    default_key = "error.inference_failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or msg(self.default_key)
        super().__init__(self.message)


class ValidationError(PersonaAgentError):
    """A required request field is missing."""

    status_code = 400
    default_key = "error.prompt_required"


class NotFound(PersonaAgentError):
    """An operation referenced an unknown channel."""

    status_code = 404
    default_key = "error.channel_not_found"


class CollectionNotFound(NotFound):
    """The channel's memory collection does not exist."""


class DownstreamUnavailable(PersonaAgentError):
    """An inference, store or synthesis call failed."""

    status_code = 500


class InferenceUnavailable(DownstreamUnavailable):
    default_key = "error.inference_failed"


class StoreUnavailable(DownstreamUnavailable):
    default_key = "error.store_failed"


class SpeechUnavailable(DownstreamUnavailable):
    default_key = "error.tts_failed"


class GateDeclined(PersonaAgentError):
    """The turn-gate decided not to respond."""

    status_code = 204
    default_key = "gate.declined"
