"""
Error taxonomy for notification dispatch.

Four kinds of failure are kept apart so the calling scheduler can decide
what to retry:

- ChannelConfigError: a channel's settings are unusable (construction time)
- RenderError: a template failed to parse or execute (send time, no send made)
- TransportError: the outbound call failed, timed out or was cancelled
- IntegrationRejectedError: the receiving service answered with a failure status
"""

from typing import ClassVar


class NotifierError(Exception):
    """Base class for every error raised or returned by Beacon."""

    kind: ClassVar[str] = "notifier"

    @property
    def retryable(self) -> bool:
        """Whether repeating the same send could succeed."""
        return False


class ChannelConfigError(NotifierError, ValueError):
    """A required channel setting is missing or a setting has an invalid value."""

    kind: ClassVar[str] = "config"


class RenderError(NotifierError):
    """A template could not be parsed or executed."""

    kind: ClassVar[str] = "render"


class TransportError(NotifierError):
    """
    The outbound call did not complete.

    Attributes:
        cancelled: True when the caller's cancellation signal or deadline ended the call
    """

    kind: ClassVar[str] = "transport"

    def __init__(self, message: str, cancelled: bool = False):
        super().__init__(message)
        self.cancelled = cancelled

    @property
    def retryable(self) -> bool:
        return not self.cancelled


class IntegrationRejectedError(NotifierError):
    """
    The receiving service answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by the service
        body: Response body, if any
    """

    kind: ClassVar[str] = "rejected"

    def __init__(self, status_code: int, body: str = "", url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        message = f"webhook response status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500
