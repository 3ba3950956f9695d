"""
Negotiation engine adapter around aiortc's RTCPeerConnection.
"""
import datetime
from typing import Any, Callable, Dict, Optional, Set

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCDataChannel,
    RTCIceCandidate,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..core.logging import LoggerMixin, debug_log


def description_to_dict(description: RTCSessionDescription) -> Dict[str, Any]:
    return {"type": description.type, "sdp": description.sdp}


def description_from_dict(data: Dict[str, Any]) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=data["sdp"], type=data["type"])


def candidate_to_dict(candidate: RTCIceCandidate) -> Dict[str, Any]:
    return {
        "candidate": "candidate:" + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_dict(data: Dict[str, Any]) -> RTCIceCandidate:
    sdp = data["candidate"]
    if sdp.startswith("candidate:"):
        sdp = sdp.split(":", 1)[1]
    candidate = candidate_from_sdp(sdp)
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return candidate


class PeerConnectionEngine(LoggerMixin):
    """Owns one RTCPeerConnection and exposes the operations the coordinator needs."""

    def __init__(self, rtc_config: Optional[RTCConfiguration] = None, session_id: str = ""):
        super().__init__()
        self.session_id = session_id
        self.pc = RTCPeerConnection(configuration=rtc_config)
        self.closed = False

        self.callbacks: Dict[str, Set[Callable]] = {
            'local_candidate': set(),
            'track': set(),
            'datachannel': set()
        }

        self._setup_peer_connection_handlers()

    def add_callback(self, event: str, callback: Callable):
        """Add a callback for engine events."""
        if event in self.callbacks:
            self.callbacks[event].add(callback)

    def remove_callback(self, event: str, callback: Callable):
        if event in self.callbacks:
            self.callbacks[event].discard(callback)

    def _notify_callbacks(self, event: str, data: Any = None):
        for callback in list(self.callbacks.get(event, ())):
            try:
                callback(data)
            except Exception as e:
                self.log_error(f"Error in engine callback", {
                    "event": event,
                    "session_id": self.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

    def _setup_peer_connection_handlers(self):
        pc = self.pc

        @pc.on("icecandidate")
        def on_ice_candidate(candidate):
            debug_log(f"🧊 [PeerEngine] Local ICE candidate", {
                "session_id": self.session_id,
                "candidate_type": candidate.type if candidate else None,
                "timestamp": datetime.datetime.now().isoformat()
            })
            self._notify_callbacks('local_candidate', candidate_to_dict(candidate) if candidate else None)

        @pc.on("track")
        def on_track(track: MediaStreamTrack):
            debug_log(f"📥 [PeerEngine] Remote track arrived", {
                "session_id": self.session_id,
                "kind": track.kind
            })
            self._notify_callbacks('track', track)

        @pc.on("datachannel")
        def on_datachannel(channel: RTCDataChannel):
            self._notify_callbacks('datachannel', channel)

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            debug_log(f"🔗 [PeerEngine] ICE connection state changed", {
                "session_id": self.session_id,
                "ice_state": pc.iceConnectionState
            })

        @pc.on("icegatheringstatechange")
        async def on_ice_gathering_state_change():
            debug_log(f"🧊 [PeerEngine] ICE gathering state changed", {
                "session_id": self.session_id,
                "ice_state": pc.iceGatheringState
            })

        @pc.on("signalingstatechange")
        async def on_signaling_state_change():
            debug_log(f"📡 [PeerEngine] Signaling state changed", {
                "session_id": self.session_id,
                "signaling_state": pc.signalingState
            })

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            debug_log(f"🔗 [PeerEngine] Connection state changed", {
                "session_id": self.session_id,
                "connection_state": pc.connectionState
            })

    def add_track(self, track: MediaStreamTrack):
        self.pc.addTrack(track)

    def create_data_channel(self, label: str) -> RTCDataChannel:
        return self.pc.createDataChannel(label)

    async def create_offer(self) -> Dict[str, Any]:
        return description_to_dict(await self.pc.createOffer())

    async def create_answer(self) -> Dict[str, Any]:
        return description_to_dict(await self.pc.createAnswer())

    async def set_local_description(self, description: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the local description and return it with gathered candidates included."""
        await self.pc.setLocalDescription(description_from_dict(description))
        return description_to_dict(self.pc.localDescription)

    async def set_remote_description(self, description: Dict[str, Any]):
        await self.pc.setRemoteDescription(description_from_dict(description))

    async def add_remote_candidate(self, candidate: Dict[str, Any]):
        await self.pc.addIceCandidate(candidate_from_dict(candidate))

    async def close(self):
        """Close the peer connection; repeated calls do nothing."""
        if self.closed:
            return
        self.closed = True
        await self.pc.close()
        debug_log(f"⏹️ [PeerEngine] Peer connection closed", {"session_id": self.session_id})
