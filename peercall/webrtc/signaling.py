"""
Signaling transport: a Socket.IO connection to the relay server.
"""
import asyncio
from typing import Any, AsyncIterator, Optional, Tuple

import socketio
from socketio.exceptions import SocketIOError

from ..core.exceptions import TransportClosed
from ..core.logging import LoggerMixin, debug_log

SIGNAL_EVENTS = ('created', 'joined', 'full', 'new_peer', 'invite', 'ok', 'ice_candidate', 'bye')

_CLOSED = object()


class SignalingClient(LoggerMixin):
    """
    Ordered event channel to the relay server.

    Socket.IO may run each inbound handler in its own task, so handlers only
    enqueue; ``events()`` yields them in arrival order.
    """

    def __init__(self, url: str, sio: Optional[socketio.AsyncClient] = None):
        super().__init__()
        self.url = url
        self.sio = sio or socketio.AsyncClient(reconnection=False)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

        for event in SIGNAL_EVENTS:
            self.sio.on(event, self._make_handler(event))
        self.sio.on('disconnect', self._on_disconnect)

    def _make_handler(self, event: str):
        def handler(data=None):
            self._queue.put_nowait((event, data))
        return handler

    def _on_disconnect(self, *args):
        debug_log(f"🔌 [Signaling] Disconnected from relay server", {"url": self.url})
        self._queue.put_nowait(_CLOSED)

    @property
    def connected(self) -> bool:
        return not self._closed and self.sio.connected

    async def open(self):
        self.log_info(f"🔌 [Signaling] Connecting to relay server", {"url": self.url})
        await self.sio.connect(self.url)

    async def emit(self, event: str, data: Any = None):
        """Emit one event; raises TransportClosed when the connection is gone."""
        if not self.connected:
            raise TransportClosed("Signaling transport is closed", {"event": event})
        try:
            await self.sio.emit(event, data)
        except SocketIOError as e:
            raise TransportClosed("Signaling emit failed", {"event": event, "error": str(e)}) from e
        debug_log(f"📤 [Signaling] Sent {event}", level="DEBUG")

    async def events(self) -> AsyncIterator[Tuple[str, Any]]:
        """Yield (event, payload) pairs until the transport closes."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self):
        """Disconnect; repeated calls do nothing."""
        if self._closed:
            return
        self._closed = True
        if self.sio.connected:
            await self.sio.disconnect()
        self._queue.put_nowait(_CLOSED)
