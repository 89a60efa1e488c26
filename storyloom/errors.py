"""
Error taxonomy for storyloom.

- ValidationError: bad input to a fact/decision mutation. Never retried.
- NotFoundError: an unknown id was referenced.
- ConflictError: an invariant would be violated (e.g. presenting a second decision).
- ExternalServiceError: the language model or summarizer failed. Always
  recoverable through a fallback path; never fatal to the session.
"""

from .enums import ExternalErrorKind


class StoryloomError(Exception):
    """Base class for all engine errors."""


class ValidationError(StoryloomError):
    """Rejected input to a Fact or Decision mutation."""


class NotFoundError(StoryloomError):
    """Referenced id does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class ConflictError(StoryloomError):
    """Operation would break a single-owner invariant."""


class ExternalServiceError(StoryloomError):
    """Failure of an external collaborator (LLM or summarizer)."""

    def __init__(self, kind: ExternalErrorKind, message: str = "", service: str = "llm"):
        self.kind = ExternalErrorKind(kind)
        self.service = service
        super().__init__(f"[{service}:{self.kind}] {message}" if message else f"[{service}:{self.kind}]")

    @property
    def retryable(self) -> bool:
        """Timeouts and transport errors may succeed on retry; garbage won't."""
        return self.kind in (ExternalErrorKind.TIMEOUT, ExternalErrorKind.TRANSPORT_ERROR)
