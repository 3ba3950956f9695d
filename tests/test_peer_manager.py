"""Tests covering conversion between aiortc objects and signaling payloads."""
from peercall.webrtc.peer_manager import (
    candidate_from_dict,
    candidate_to_dict,
    description_from_dict,
    description_to_dict,
)

SRFLX = "candidate:842163049 1 udp 1677729535 203.0.113.7 54400 typ srflx raddr 192.168.1.5 rport 54400"


def test_browser_candidate_is_parsed():
    candidate = candidate_from_dict({"candidate": SRFLX, "sdpMid": "0", "sdpMLineIndex": 0})

    assert candidate.foundation == "842163049"
    assert candidate.component == 1
    assert candidate.priority == 1677729535
    assert candidate.ip == "203.0.113.7"
    assert candidate.port == 54400
    assert candidate.type == "srflx"
    assert candidate.relatedAddress == "192.168.1.5"
    assert candidate.relatedPort == 54400
    assert candidate.sdpMid == "0"
    assert candidate.sdpMLineIndex == 0


def test_candidate_round_trip_keeps_browser_form():
    data = {"candidate": SRFLX, "sdpMid": "0", "sdpMLineIndex": 0}

    assert candidate_to_dict(candidate_from_dict(data)) == data


def test_trailing_browser_attributes_are_ignored():
    data = {"candidate": SRFLX + " generation 0 ufrag Xy9a network-cost 999",
            "sdpMid": "audio", "sdpMLineIndex": 1}

    candidate = candidate_from_dict(data)

    assert candidate.ip == "203.0.113.7"
    assert candidate_to_dict(candidate)["candidate"] == SRFLX


def test_candidate_without_prefix_is_accepted():
    candidate = candidate_from_dict({"candidate": SRFLX[len("candidate:"):]})

    assert candidate.type == "srflx"
    assert candidate.sdpMid is None


def test_description_round_trip():
    data = {"type": "offer", "sdp": "v=0\r\n"}

    description = description_from_dict(data)

    assert description.type == "offer"
    assert description_to_dict(description) == data
