"""
Offer/answer/candidate sequencing for one call session.

The coordinator never touches the peer connection or the transport itself.
Each inbound message goes through ``dispatch``, which updates the state and
returns the effects to run. Engine completions come back as new messages.
"""
from collections import Counter
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.exceptions import OutOfOrderSignal
from ..core.logging import LoggerMixin
from .messages import (
    AddRemoteCandidate,
    AnswerCreated,
    AnswerReceived,
    ByeReceived,
    CreateAnswer,
    CreateDataChannel,
    CreateOffer,
    EndSession,
    EngineFailed,
    HangUpRequested,
    InviteReceived,
    JoinRequested,
    LocalCandidate,
    LocalDescriptionSet,
    OfferCreated,
    PeerJoined,
    RemoteCandidate,
    RemoteDescriptionSet,
    RoomCreated,
    RoomFull,
    RoomJoined,
    SendSignal,
    SetLocalDescription,
    SetRemoteDescription,
    Transition,
)
from .role_resolver import Role, RoleResolver


class NegotiationState(Enum):
    IDLE = "idle"
    JOINING = "joining"
    ROLE_ASSIGNED = "role_assigned"
    OFFER_SENT = "offer_sent"
    OFFER_RECEIVED = "offer_received"
    ANSWER_RECEIVED = "answer_received"
    ANSWER_SENT = "answer_sent"
    CONNECTED = "connected"
    CLOSED = "closed"


# Description-exchange messages each role must see, in this order.
STEP_PLANS = {
    Role.CALLER: (OfferCreated, LocalDescriptionSet, AnswerReceived, RemoteDescriptionSet),
    Role.CALLEE: (InviteReceived, RemoteDescriptionSet, AnswerCreated, LocalDescriptionSet),
}

# Engine operations that apply a payload received from the peer.
PEER_PAYLOAD_OPERATIONS = {"set_remote_description", "add_remote_candidate"}


class NegotiationCoordinator(LoggerMixin):
    """State machine driving one session's description and candidate exchange."""

    def __init__(self, data_channel_label: str = "data channel"):
        super().__init__()
        self.data_channel_label = data_channel_label
        self.state = NegotiationState.IDLE
        self.room: Optional[str] = None
        self.resolver = RoleResolver()
        self.discarded: Counter = Counter()

        self._cursor = 0
        self._remote_description_set = False
        self._pending_remote_candidates: List[Dict[str, Any]] = []
        self._held_local_candidates: List[Dict[str, Any]] = []

        self._handlers = {
            JoinRequested: self._on_join_requested,
            RoomCreated: self._on_membership,
            RoomJoined: self._on_membership,
            RoomFull: self._on_room_full,
            PeerJoined: self._on_peer_joined,
            InviteReceived: self._on_invite,
            OfferCreated: self._on_description_created,
            AnswerCreated: self._on_description_created,
            LocalDescriptionSet: self._on_local_description_set,
            AnswerReceived: self._on_answer,
            RemoteDescriptionSet: self._on_remote_description_set,
            RemoteCandidate: self._on_remote_candidate,
            LocalCandidate: self._on_local_candidate,
            EngineFailed: self._on_engine_failed,
            ByeReceived: self._on_bye,
            HangUpRequested: self._on_hang_up,
        }

    @property
    def role(self) -> Role:
        return self.resolver.role

    @property
    def pending_candidate_count(self) -> int:
        return len(self._pending_remote_candidates)

    def dispatch(self, message) -> Transition:
        """Apply one message; anomalies are logged and discarded, RoomUnavailable propagates."""
        if self.state is NegotiationState.CLOSED:
            self.log_debug(f"🔒 [Negotiation] Ignoring {type(message).__name__} on closed session")
            return Transition(self.state, [])

        handler = self._handlers.get(type(message))
        if handler is None:
            raise TypeError(f"Unsupported negotiation message: {message!r}")

        try:
            effects = handler(message)
        except OutOfOrderSignal as e:
            self._discard(message, e)
            effects = []

        return Transition(self.state, effects)

    def _set_state(self, state: NegotiationState):
        self.log_info(f"🤝 [Negotiation] {self.state.value} -> {state.value}", {
            "room": self.room,
            "role": self.role.value
        })
        self.state = state

    def _discard(self, message, error: OutOfOrderSignal):
        self.discarded[error.reason] += 1
        self.log_warning(f"⚠️ [Negotiation] Discarded {type(message).__name__}", {
            "state": self.state.value,
            "role": self.role.value,
            "reason": error.reason,
            "error": str(error),
            "discarded": dict(self.discarded)
        })

    def _advance(self, message):
        """Consume the next description step for this role, or raise OutOfOrderSignal."""
        plan = STEP_PLANS.get(self.role)
        if plan is None:
            raise OutOfOrderSignal("No role assigned yet", reason="unexpected",
                                   details={"message": type(message).__name__})

        index = plan.index(type(message)) if type(message) in plan else None
        if index is None or index > self._cursor:
            raise OutOfOrderSignal("Description step not reachable yet", reason="unexpected",
                                   details={"message": type(message).__name__, "step": self._cursor})
        if index < self._cursor:
            raise OutOfOrderSignal("Description step already done", reason="stale",
                                   details={"message": type(message).__name__, "step": self._cursor})
        self._cursor += 1

    def _release_held_local_candidates(self) -> List[SendSignal]:
        effects = [SendSignal('ice_candidate', candidate) for candidate in self._held_local_candidates]
        self._held_local_candidates.clear()
        return effects

    # Room membership

    def _on_join_requested(self, message: JoinRequested):
        if self.state is not NegotiationState.IDLE:
            raise OutOfOrderSignal("Join already requested", reason="stale")
        self.room = message.room
        self._set_state(NegotiationState.JOINING)
        return [SendSignal('join', message.room)]

    def _on_membership(self, message):
        self.resolver.resolve(message)
        return []

    def _on_room_full(self, message: RoomFull):
        if self.state is not NegotiationState.JOINING:
            raise OutOfOrderSignal("Room full notice outside of join", reason="unexpected")
        self._set_state(NegotiationState.CLOSED)
        self.resolver.resolve(message)
        return []

    def _on_peer_joined(self, message: PeerJoined):
        self.resolver.resolve(message)
        self._set_state(NegotiationState.ROLE_ASSIGNED)
        # The channel must exist before the offer is created so the offer carries it.
        return [
            CreateDataChannel(self.data_channel_label),
            CreateOffer(),
        ] + self._release_held_local_candidates()

    def _on_invite(self, message: InviteReceived):
        self.resolver.resolve(message)
        self._set_state(NegotiationState.ROLE_ASSIGNED)
        self._advance(message)
        self._set_state(NegotiationState.OFFER_RECEIVED)
        return [SetRemoteDescription(message.offer)] + self._release_held_local_candidates()

    # Description exchange

    def _on_description_created(self, message):
        self._advance(message)
        return [SetLocalDescription(message.description)]

    def _on_local_description_set(self, message: LocalDescriptionSet):
        self._advance(message)
        if self.role is Role.CALLER:
            self._set_state(NegotiationState.OFFER_SENT)
            return [SendSignal('invite', message.description)]

        self._set_state(NegotiationState.ANSWER_SENT)
        effects = [SendSignal('ok', message.description)]
        self._set_state(NegotiationState.CONNECTED)
        return effects

    def _on_answer(self, message: AnswerReceived):
        self._advance(message)
        self._set_state(NegotiationState.ANSWER_RECEIVED)
        return [SetRemoteDescription(message.answer)]

    def _on_remote_description_set(self, message: RemoteDescriptionSet):
        self._advance(message)
        self._remote_description_set = True

        effects = [AddRemoteCandidate(candidate) for candidate in self._pending_remote_candidates]
        if effects:
            self.log_info(f"🧊 [Negotiation] Flushing {len(effects)} buffered remote candidates")
        self._pending_remote_candidates.clear()

        if self.role is Role.CALLER:
            self._set_state(NegotiationState.CONNECTED)
            return effects
        return effects + [CreateAnswer()]

    # Candidates

    def _on_remote_candidate(self, message: RemoteCandidate):
        if not message.candidate:
            self.log_debug("🧊 [Negotiation] Remote end-of-candidates, nothing to apply")
            return []
        if not self._remote_description_set:
            self._pending_remote_candidates.append(message.candidate)
            self.log_debug("🧊 [Negotiation] Buffering remote candidate", {
                "state": self.state.value,
                "buffered": len(self._pending_remote_candidates)
            })
            return []
        return [AddRemoteCandidate(message.candidate)]

    def _on_local_candidate(self, message: LocalCandidate):
        if message.candidate is None:
            self.log_debug("🧊 [Negotiation] Local candidate gathering complete")
            return []
        if not self.resolver.assigned:
            self._held_local_candidates.append(message.candidate)
            return []
        return [SendSignal('ice_candidate', message.candidate)]

    def _on_engine_failed(self, message: EngineFailed):
        reason = "malformed" if message.operation in PEER_PAYLOAD_OPERATIONS else "engine"
        raise OutOfOrderSignal(f"Engine rejected {message.operation}", reason=reason,
                               details={"error": message.error})

    # Termination

    def _on_bye(self, message: ByeReceived):
        self._set_state(NegotiationState.CLOSED)
        return [EndSession("peer")]

    def _on_hang_up(self, message: HangUpRequested):
        self._set_state(NegotiationState.CLOSED)
        return []
