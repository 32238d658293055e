"""Failure taxonomy for the call pipeline.

Recognition, generation and synthesis failures are absorbed by their
adapters' fallbacks. Protocol failures end the call immediately. Persistence
failures are logged and reported to live observers without interrupting the
call.
"""
from typing import Optional


class OrchestratorError(Exception):
    """Base class for call pipeline failures."""

    def __init__(self, message: str, call_id: Optional[str] = None):
        super().__init__(message)
        self.call_id = call_id

    @property
    def kind(self) -> str:
        return type(self).__name__


class RecognitionFailure(OrchestratorError):
    """Input was empty, garbled, or could not be transcribed."""


class GenerationServiceFailure(OrchestratorError):
    """The dialogue generation service timed out, hit a quota, or returned garbage."""


class SynthesisFailure(OrchestratorError):
    """The premium synthesis voice could not render a line."""


class PersistenceFailure(OrchestratorError):
    """A durable store was unavailable."""


class ProtocolFailure(OrchestratorError):
    """A webhook arrived without the identifiers needed to route it."""
