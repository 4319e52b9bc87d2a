"""
Error taxonomy for the orchestration engine.
Every failure carries the stage it happened in so callers can tell a failed
translation apart from a translation whose output could not be located.
"""

from typing import Optional


class OrchestrationError(Exception):
    """Base class for all orchestration failures."""

    stage = "orchestration"
    transient = False

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage:
            self.stage = stage


class ConfigurationError(OrchestrationError):
    """Required endpoint or role reference missing at startup."""

    stage = "config"


class PreflightTimeoutError(OrchestrationError):
    """Input object never became visible in the object store."""

    stage = "preflight"


class SubmissionError(OrchestrationError):
    """Translation service rejected job creation."""

    stage = "submission"


class PollTransportError(OrchestrationError):
    """A single status request failed at the transport level."""

    stage = "processing"
    transient = True


class PollBudgetExceededError(OrchestrationError):
    """Job did not reach a terminal state within the polling budget."""

    stage = "processing"


class JobFailedError(OrchestrationError):
    """Translation service reported a terminal failure."""

    stage = "processing"


class ResultFinalizingError(OrchestrationError):
    """Job succeeded but its output is not listable yet."""

    stage = "resolution"
    transient = True


class ResolutionNotFoundError(OrchestrationError):
    """Job succeeded but no output object could be confirmed."""

    stage = "resolution"


class StorageError(OrchestrationError):
    """Object store request failed."""

    stage = "resolution"


class InvalidTransitionError(OrchestrationError):
    """State machine was asked for a transition it does not allow."""
