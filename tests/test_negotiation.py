"""Tests covering the offer/answer/candidate state machine."""
import pytest

from peercall.core.exceptions import RoomUnavailable
from peercall.webrtc.messages import (
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
    SendSignal,
    SetLocalDescription,
    SetRemoteDescription,
)
from peercall.webrtc.negotiation import NegotiationCoordinator, NegotiationState
from peercall.webrtc.role_resolver import Role

OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}
CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.2 50000 typ host",
             "sdpMid": "0", "sdpMLineIndex": 0}


def joined_coordinator() -> NegotiationCoordinator:
    coordinator = NegotiationCoordinator()
    coordinator.dispatch(JoinRequested("X"))
    return coordinator


def caller_in_offer_sent() -> NegotiationCoordinator:
    coordinator = joined_coordinator()
    coordinator.dispatch(PeerJoined("X"))
    coordinator.dispatch(OfferCreated(OFFER))
    coordinator.dispatch(LocalDescriptionSet(OFFER))
    return coordinator


def test_join_sends_join_request():
    coordinator = NegotiationCoordinator()
    transition = coordinator.dispatch(JoinRequested("X"))

    assert transition.state is NegotiationState.JOINING
    assert transition.effects == [SendSignal("join", "X")]


def test_alone_in_room_assigns_no_role_and_sends_nothing():
    coordinator = joined_coordinator()
    transition = coordinator.dispatch(RoomCreated("X"))

    assert transition.effects == []
    assert coordinator.role is Role.UNASSIGNED
    assert coordinator.state is NegotiationState.JOINING


def test_caller_path_reaches_connected():
    coordinator = joined_coordinator()

    transition = coordinator.dispatch(PeerJoined("X"))
    assert coordinator.role is Role.CALLER
    assert transition.state is NegotiationState.ROLE_ASSIGNED
    assert transition.effects == [CreateDataChannel("data channel"), CreateOffer()]

    assert coordinator.dispatch(OfferCreated(OFFER)).effects == [SetLocalDescription(OFFER)]

    transition = coordinator.dispatch(LocalDescriptionSet(OFFER))
    assert transition.state is NegotiationState.OFFER_SENT
    assert transition.effects == [SendSignal("invite", OFFER)]

    transition = coordinator.dispatch(AnswerReceived(ANSWER))
    assert transition.state is NegotiationState.ANSWER_RECEIVED
    assert transition.effects == [SetRemoteDescription(ANSWER)]

    transition = coordinator.dispatch(RemoteDescriptionSet("answer"))
    assert transition.state is NegotiationState.CONNECTED
    assert transition.effects == []


def test_callee_path_reaches_connected():
    coordinator = joined_coordinator()

    transition = coordinator.dispatch(InviteReceived(OFFER))
    assert coordinator.role is Role.CALLEE
    assert transition.state is NegotiationState.OFFER_RECEIVED
    assert transition.effects == [SetRemoteDescription(OFFER)]

    assert coordinator.dispatch(RemoteDescriptionSet("offer")).effects == [CreateAnswer()]
    assert coordinator.dispatch(AnswerCreated(ANSWER)).effects == [SetLocalDescription(ANSWER)]

    transition = coordinator.dispatch(LocalDescriptionSet(ANSWER))
    assert transition.state is NegotiationState.CONNECTED
    assert transition.effects == [SendSignal("ok", ANSWER)]


def test_second_offer_in_offer_sent_is_rejected():
    coordinator = caller_in_offer_sent()

    transition = coordinator.dispatch(InviteReceived(OFFER))

    assert transition.state is NegotiationState.OFFER_SENT
    assert transition.effects == []
    assert coordinator.role is Role.CALLER
    assert coordinator.discarded["unexpected"] == 1


def test_answer_before_offer_sent_is_discarded():
    coordinator = joined_coordinator()
    coordinator.dispatch(PeerJoined("X"))

    transition = coordinator.dispatch(AnswerReceived(ANSWER))

    assert transition.state is NegotiationState.ROLE_ASSIGNED
    assert transition.effects == []
    assert coordinator.discarded["unexpected"] == 1


def test_duplicate_answer_counts_as_stale():
    coordinator = caller_in_offer_sent()
    coordinator.dispatch(AnswerReceived(ANSWER))
    coordinator.dispatch(RemoteDescriptionSet("answer"))

    transition = coordinator.dispatch(AnswerReceived(ANSWER))

    assert transition.state is NegotiationState.CONNECTED
    assert transition.effects == []
    assert coordinator.discarded["stale"] == 1


def test_duplicate_invite_for_callee_is_stale():
    coordinator = joined_coordinator()
    coordinator.dispatch(InviteReceived(OFFER))

    transition = coordinator.dispatch(InviteReceived(OFFER))

    assert transition.state is NegotiationState.OFFER_RECEIVED
    assert transition.effects == []
    assert coordinator.discarded["stale"] == 1


def test_peer_joined_after_invite_never_starts_caller_flow():
    coordinator = joined_coordinator()
    coordinator.dispatch(InviteReceived(OFFER))

    transition = coordinator.dispatch(PeerJoined("X"))

    assert coordinator.role is Role.CALLEE
    assert CreateOffer() not in transition.effects


@pytest.mark.parametrize("signals,expected_role", [
    ([RoomCreated("X"), PeerJoined("X")], Role.CALLER),
    ([RoomCreated("X"), PeerJoined("X"), InviteReceived(OFFER)], Role.CALLER),
    ([InviteReceived(OFFER)], Role.CALLEE),
    ([InviteReceived(OFFER), PeerJoined("X"), InviteReceived(OFFER)], Role.CALLEE),
])
def test_exactly_one_flow_starts_per_session(signals, expected_role):
    coordinator = joined_coordinator()
    effects = []
    for signal in signals:
        effects.extend(coordinator.dispatch(signal).effects)

    offer_flows = effects.count(CreateOffer())
    answer_flows = sum(1 for effect in effects
                       if isinstance(effect, SetRemoteDescription) and effect.description is OFFER)
    assert offer_flows + answer_flows == 1
    assert coordinator.role is expected_role


def test_remote_candidate_before_role_is_applied_once_after_remote_description():
    coordinator = joined_coordinator()

    assert coordinator.dispatch(RemoteCandidate(CANDIDATE)).effects == []
    assert coordinator.pending_candidate_count == 1

    transition = coordinator.dispatch(InviteReceived(OFFER))
    assert AddRemoteCandidate(CANDIDATE) not in transition.effects

    transition = coordinator.dispatch(RemoteDescriptionSet("offer"))
    assert transition.effects == [AddRemoteCandidate(CANDIDATE), CreateAnswer()]
    assert coordinator.pending_candidate_count == 0

    later = coordinator.dispatch(AnswerCreated(ANSWER)).effects
    later += coordinator.dispatch(LocalDescriptionSet(ANSWER)).effects
    assert AddRemoteCandidate(CANDIDATE) not in later


def test_remote_candidate_after_remote_description_is_applied_immediately():
    coordinator = caller_in_offer_sent()
    coordinator.dispatch(AnswerReceived(ANSWER))
    coordinator.dispatch(RemoteDescriptionSet("answer"))

    transition = coordinator.dispatch(RemoteCandidate(CANDIDATE))

    assert transition.effects == [AddRemoteCandidate(CANDIDATE)]


def test_null_local_candidate_is_not_forwarded():
    coordinator = caller_in_offer_sent()

    transition = coordinator.dispatch(LocalCandidate(None))

    assert transition.effects == []


def test_local_candidate_is_forwarded_once_role_exists():
    coordinator = caller_in_offer_sent()

    transition = coordinator.dispatch(LocalCandidate(CANDIDATE))

    assert transition.effects == [SendSignal("ice_candidate", CANDIDATE)]


def test_local_candidate_before_role_is_held():
    coordinator = joined_coordinator()

    assert coordinator.dispatch(LocalCandidate(CANDIDATE)).effects == []

    transition = coordinator.dispatch(PeerJoined("X"))
    assert transition.effects[-1] == SendSignal("ice_candidate", CANDIDATE)
    assert transition.effects.count(SendSignal("ice_candidate", CANDIDATE)) == 1


def test_room_full_raises_and_closes():
    coordinator = joined_coordinator()

    with pytest.raises(RoomUnavailable):
        coordinator.dispatch(RoomFull("X"))

    assert coordinator.state is NegotiationState.CLOSED


def test_engine_failure_on_peer_payload_is_counted_as_malformed():
    coordinator = caller_in_offer_sent()
    coordinator.dispatch(AnswerReceived(ANSWER))

    transition = coordinator.dispatch(EngineFailed("set_remote_description", "bad sdp"))

    assert transition.state is NegotiationState.ANSWER_RECEIVED
    assert coordinator.discarded["malformed"] == 1


def test_bye_closes_and_ends_session():
    coordinator = caller_in_offer_sent()

    transition = coordinator.dispatch(ByeReceived("X"))

    assert transition.state is NegotiationState.CLOSED
    assert transition.effects == [EndSession("peer")]


def test_closed_is_terminal():
    coordinator = caller_in_offer_sent()
    coordinator.dispatch(HangUpRequested())

    for message in (ByeReceived("X"), AnswerReceived(ANSWER), RemoteCandidate(CANDIDATE),
                    JoinRequested("Y")):
        transition = coordinator.dispatch(message)
        assert transition.state is NegotiationState.CLOSED
        assert transition.effects == []
