"""
Custom exception classes for peercall.
"""


class PeerCallError(Exception):
    """Base exception for peercall."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class MediaUnavailable(PeerCallError):
    """Raised when neither the camera nor a screen share can be captured."""
    pass


class EmptyRoomName(PeerCallError):
    """Raised when the user supplies no room token."""
    pass


class RoomUnavailable(PeerCallError):
    """Raised when the room already has two occupants."""
    pass


class OutOfOrderSignal(PeerCallError):
    """Raised when a description or candidate message does not fit the current state."""

    def __init__(self, message: str, reason: str = "unexpected", details: dict = None):
        super().__init__(message, details)
        self.reason = reason


class ChannelNotOpen(PeerCallError):
    """Raised when a data channel send is attempted outside the open window."""
    pass


class TransportClosed(PeerCallError):
    """Raised when emitting on a signaling transport that is no longer connected."""
    pass


class SessionActive(PeerCallError):
    """Raised when a call is started while another one is still live."""
    pass
