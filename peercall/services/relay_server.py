"""
Signaling relay server: Socket.IO over aiohttp.

Rooms hold at most two participants. Session descriptions, candidates and
bye notices are forwarded unchanged to the other occupant of the sender's room.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import socketio
from aiohttp import web

from ..core.config import CallConfig
from ..core.logging import LoggerMixin, debug_log, setup_logging

RELAYED_EVENTS = ('invite', 'ok', 'ice_candidate')


@dataclass
class JoinResult:
    outcome: str
    room: str
    peers: List[str] = field(default_factory=list)


class RoomRegistry(LoggerMixin):
    """Room membership bookkeeping, independent of the network layer."""

    def __init__(self, capacity: int = 2):
        super().__init__()
        self.capacity = capacity
        self.rooms: Dict[str, List[str]] = {}
        self.member_room: Dict[str, str] = {}

    def join(self, room: str, sid: str) -> JoinResult:
        """Add sid to room. Outcome is 'created', 'joined' or 'full'."""
        current = self.member_room.get(sid)
        if current == room:
            return JoinResult("joined", room, self.peers_of(sid))
        if current is not None:
            self.leave(sid)

        members = self.rooms.get(room, [])
        if len(members) >= self.capacity:
            self.log_info(f"🚪 [Relay] Room full", {"room": room, "sid": sid})
            return JoinResult("full", room)

        peers = list(members)
        self.rooms[room] = members + [sid]
        self.member_room[sid] = room
        outcome = "created" if not peers else "joined"
        self.log_info(f"🚪 [Relay] Client {outcome} room", {
            "room": room,
            "sid": sid,
            "occupants": len(self.rooms[room])
        })
        return JoinResult(outcome, room, peers)

    def peers_of(self, sid: str) -> List[str]:
        room = self.member_room.get(sid)
        if room is None:
            return []
        return [member for member in self.rooms.get(room, []) if member != sid]

    def leave(self, sid: str) -> Optional[str]:
        room = self.member_room.pop(sid, None)
        if room is None:
            return None
        members = [member for member in self.rooms.get(room, []) if member != sid]
        if members:
            self.rooms[room] = members
        else:
            self.rooms.pop(room, None)
        self.log_info(f"🚪 [Relay] Client left room", {"room": room, "sid": sid})
        return room

    def get_status(self) -> Dict[str, int]:
        return {room: len(members) for room, members in self.rooms.items()}


def create_app(registry: Optional[RoomRegistry] = None) -> web.Application:
    """Build the aiohttp application with the Socket.IO relay attached."""
    registry = registry or RoomRegistry()
    sio = socketio.AsyncServer(async_mode='aiohttp', cors_allowed_origins='*')
    app = web.Application()
    sio.attach(app)
    app['registry'] = registry
    app['sio'] = sio

    @sio.event
    async def connect(sid, environ):
        debug_log(f"🔌 [Relay] Client connected", {"sid": sid})

    @sio.event
    async def disconnect(sid, *args):
        debug_log(f"🔌 [Relay] Client disconnected", {"sid": sid})
        registry.leave(sid)

    @sio.on('join')
    async def join(sid, room):
        if not room:
            debug_log(f"⚠️ [Relay] Join without room name ignored", {"sid": sid}, "WARNING")
            return
        result = registry.join(room, sid)
        if result.outcome == "full":
            await sio.emit('full', room, to=sid)
            return
        await sio.emit(result.outcome, room, to=sid)
        for peer in result.peers:
            await sio.emit('new_peer', room, to=peer)

    def make_relay(event: str):
        async def relay(sid, data=None):
            peers = registry.peers_of(sid)
            if not peers:
                debug_log(f"⚠️ [Relay] {event} from client outside a room", {"sid": sid}, "WARNING")
                return
            for peer in peers:
                await sio.emit(event, data, to=peer)
        return relay

    for event in RELAYED_EVENTS:
        sio.on(event, make_relay(event))

    @sio.on('bye')
    async def bye(sid, room=None):
        for peer in registry.peers_of(sid):
            await sio.emit('bye', room, to=peer)
        registry.leave(sid)

    app.router.add_get("/status", handle_status)
    return app


async def handle_status(request):
    """Report room occupancy."""
    registry = request.app['registry']
    return web.json_response({"rooms": registry.get_status()})


async def main(config: Optional[CallConfig] = None):
    """Run the relay server until cancelled."""
    config = config or CallConfig()
    setup_logging(level=config.log_level, log_file="peercall_relay.log")

    app = create_app()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)

    debug_log(f"🌐 [Relay] Starting signaling relay on {config.host}:{config.port}")
    await site.start()
    try:
        await asyncio.Future()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
