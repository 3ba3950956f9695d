"""
Core module for peercall.
Contains configuration, logging, and the error taxonomy.
"""

from .config import CallConfig
from .logging import setup_logging, debug_log, LoggerMixin
from .exceptions import (
    PeerCallError,
    MediaUnavailable,
    EmptyRoomName,
    RoomUnavailable,
    OutOfOrderSignal,
    ChannelNotOpen,
    TransportClosed,
    SessionActive,
)

__all__ = [
    'CallConfig',
    'setup_logging',
    'debug_log',
    'LoggerMixin',
    'PeerCallError',
    'MediaUnavailable',
    'EmptyRoomName',
    'RoomUnavailable',
    'OutOfOrderSignal',
    'ChannelNotOpen',
    'TransportClosed',
    'SessionActive',
]
