"""
Exception taxonomy for aicat.

Only TransportError (after the retry budget is spent) and ModelResponseError
end an orchestration run. Everything raised below the tool layer is converted
into a failed ToolResult and fed back to the model.
"""

from enum import Enum
from typing import Optional


class AICatError(Exception):
    """Base class for all aicat errors."""


class TransportErrorKind(str, Enum):
    """Structured failure classes produced at the chat transport boundary."""
    TIMEOUT = "timeout"
    HTTP_CLIENT = "http_client"
    HTTP_SERVER = "http_server"
    MODEL_UNAVAILABLE = "model_unavailable"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"


class TransportError(AICatError):
    """A chat-completion request failed.

    Attributes:
        kind: Classification used by the failover policy.
        detail: Raw response body or exception text, for the caller-facing message.
        status_code: HTTP status when the failure carried one.
    """

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        detail: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"TransportError(kind={self.kind.value!r}, message={self.message!r})"


class ModelResponseError(AICatError):
    """The model answered with no usable assistant message."""


class HostErrorCategory(str, Enum):
    """Friendly buckets for host action failures."""
    NO_PERMISSION = "no_permission"
    TARGET_NOT_FOUND = "target_not_found"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class HostActionError(AICatError):
    """The host rejected an action (raised error or non-zero retcode)."""

    def __init__(self, action: str, message: str, retcode: Optional[int] = None):
        super().__init__(message)
        self.action = action
        self.message = message
        self.retcode = retcode


class HostNoDataError(HostActionError):
    """The host accepted the call but returned nothing to confirm it.

    Raised for fire-and-forget actions; the real outcome arrives later as a
    notice event.
    """

    def __init__(self, action: str, message: str = "No data returned"):
        super().__init__(action, message)


class ToolRegistryError(AICatError):
    """The tool registry is not closed over its categories."""
