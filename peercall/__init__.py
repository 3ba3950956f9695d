"""
peercall: two-party WebRTC calls with a Socket.IO signaling relay.
"""

__version__ = "0.1.0"
