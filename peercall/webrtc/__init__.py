"""
WebRTC module for peercall.
Handles role resolution, offer/answer negotiation, data channels and signaling.
"""

from .role_resolver import Role, RoleResolver
from .negotiation import NegotiationCoordinator, NegotiationState
from .data_channel import DataChannelSession, Transcript
from .peer_manager import PeerConnectionEngine
from .signaling import SignalingClient

__all__ = [
    'Role',
    'RoleResolver',
    'NegotiationCoordinator',
    'NegotiationState',
    'DataChannelSession',
    'Transcript',
    'PeerConnectionEngine',
    'SignalingClient'
]
