"""
Services module for peercall.
Handles media capture, the call session lifecycle and the signaling relay.
"""

from .media_source import MediaSource, LocalStream, RemoteStream, RenderSink
from .session_manager import CallSessionManager, Session
from .relay_server import RoomRegistry, create_app

__all__ = [
    'MediaSource',
    'LocalStream',
    'RemoteStream',
    'RenderSink',
    'CallSessionManager',
    'Session',
    'RoomRegistry',
    'create_app'
]
