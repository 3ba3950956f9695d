"""
Tagged messages dispatched to the negotiation coordinator, and the effects it
asks the session manager to carry out.

Descriptions and candidates are opaque mappings passed through unchanged:
``{"type": ..., "sdp": ...}`` and
``{"candidate": ..., "sdpMid": ..., "sdpMLineIndex": ...}``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

Description = Dict[str, Any]
Candidate = Dict[str, Any]


# Inbound: local intent

@dataclass(frozen=True)
class JoinRequested:
    room: str


@dataclass(frozen=True)
class HangUpRequested:
    pass


# Inbound: signaling transport

@dataclass(frozen=True)
class RoomCreated:
    room: Optional[str] = None


@dataclass(frozen=True)
class RoomJoined:
    room: Optional[str] = None


@dataclass(frozen=True)
class RoomFull:
    room: Optional[str] = None


@dataclass(frozen=True)
class PeerJoined:
    room: Optional[str] = None


@dataclass(frozen=True)
class InviteReceived:
    offer: Description


@dataclass(frozen=True)
class AnswerReceived:
    answer: Description


@dataclass(frozen=True)
class RemoteCandidate:
    candidate: Optional[Candidate]


@dataclass(frozen=True)
class ByeReceived:
    room: Optional[str] = None


# Inbound: negotiation engine completions and events

@dataclass(frozen=True)
class OfferCreated:
    description: Description


@dataclass(frozen=True)
class AnswerCreated:
    description: Description


@dataclass(frozen=True)
class LocalDescriptionSet:
    description: Description


@dataclass(frozen=True)
class RemoteDescriptionSet:
    description_type: str


@dataclass(frozen=True)
class LocalCandidate:
    candidate: Optional[Candidate]


@dataclass(frozen=True)
class EngineFailed:
    operation: str
    error: str


# Outbound effects

@dataclass(frozen=True)
class SendSignal:
    event: str
    payload: Any = None


@dataclass(frozen=True)
class CreateDataChannel:
    label: str


@dataclass(frozen=True)
class CreateOffer:
    pass


@dataclass(frozen=True)
class CreateAnswer:
    pass


@dataclass(frozen=True)
class SetLocalDescription:
    description: Description


@dataclass(frozen=True)
class SetRemoteDescription:
    description: Description


@dataclass(frozen=True)
class AddRemoteCandidate:
    candidate: Candidate


@dataclass(frozen=True)
class EndSession:
    reason: str


@dataclass
class Transition:
    """Result of one dispatch: the state after the message and the effects to run, in order."""

    state: Any
    effects: List[Any] = field(default_factory=list)


# Signaling event name -> inbound message factory
SIGNAL_MESSAGES = {
    'created': RoomCreated,
    'joined': RoomJoined,
    'full': RoomFull,
    'new_peer': PeerJoined,
    'invite': InviteReceived,
    'ok': AnswerReceived,
    'ice_candidate': RemoteCandidate,
    'bye': ByeReceived,
}


def message_from_signal(event: str, payload: Any = None):
    """Build the inbound message for a named signaling event."""
    factory = SIGNAL_MESSAGES.get(event)
    if factory is None:
        raise KeyError(event)
    return factory(payload)
