"""Channel Exception Hierarchy

Defines exceptions for cross-context messaging failures:
- DisconnectedError: the peer (or the addressed frame) is gone
- RequestTimeoutError: transaction evicted by the liveness sweep
- RemoteError: the remote handler rejected the request
- TransportClosedError: local send attempted on a closed transport

All of these are PROTOCOL failures. The coordinator boundary recovers
from them (no-op or status message); they never crash a frame loop.
"""

from typing import Any, Dict, Optional


class ChannelError(RuntimeError):
    """Base class for all messaging failures."""


class DisconnectedError(ChannelError):
    """Raised when a request targets a channel or frame that is gone.

    THROW when:
    - Request addressed to a frameId with no live record
    - Channel disconnected while the request was pending
    """

    def __init__(self, message: str, frame_id: Optional[int] = None):
        super().__init__(message)
        self.frame_id = frame_id


class RequestTimeoutError(ChannelError):
    """Raised when the liveness sweep evicts a pending transaction."""

    def __init__(self, transaction_id: int):
        super().__init__(f"request {transaction_id} timed out")
        self.transaction_id = transaction_id


class RemoteError(ChannelError):
    """Raised when the remote side rejected a request.

    The payload is the serializable error description produced by the
    remote side, never a live exception object.
    """

    def __init__(self, payload: Any):
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("type") or "remote error"
        else:
            message = str(payload)
        super().__init__(message)
        self.payload = payload

    @property
    def error_type(self) -> Optional[str]:
        if isinstance(self.payload, dict):
            return self.payload.get("type")
        return None

    def __str__(self):
        error_type = self.error_type
        if error_type:
            return f"[{error_type}] {super().__str__()}"
        return super().__str__()


class TransportClosedError(ChannelError):
    """Raised when posting to a transport that has been closed."""


def describe_error(error: BaseException) -> Dict[str, Any]:
    """Convert an exception into a serializable error description."""
    if isinstance(error, RemoteError) and isinstance(error.payload, dict):
        return dict(error.payload)
    return {"type": type(error).__name__, "message": str(error)}
