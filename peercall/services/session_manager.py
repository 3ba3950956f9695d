"""
Call session lifecycle: start, effect execution, and teardown.

The manager owns the single live Session. Signaling events and engine
completions are turned into messages for the session's coordinator, and the
effects it returns are executed here.
"""
import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from aiortc import MediaStreamTrack, RTCDataChannel

from ..core.config import CallConfig
from ..core.exceptions import (
    ChannelNotOpen,
    EmptyRoomName,
    MediaUnavailable,
    RoomUnavailable,
    SessionActive,
    TransportClosed,
)
from ..core.logging import LoggerMixin, debug_log
from ..webrtc.data_channel import CLOSED_MARKER, DataChannelSession, Transcript
from ..webrtc.messages import (
    AddRemoteCandidate,
    AnswerCreated,
    CreateAnswer,
    CreateDataChannel,
    CreateOffer,
    EndSession,
    EngineFailed,
    HangUpRequested,
    JoinRequested,
    LocalCandidate,
    LocalDescriptionSet,
    OfferCreated,
    RemoteDescriptionSet,
    SendSignal,
    SetLocalDescription,
    SetRemoteDescription,
    message_from_signal,
)
from ..webrtc.negotiation import NegotiationCoordinator, NegotiationState
from ..webrtc.peer_manager import PeerConnectionEngine
from ..webrtc.role_resolver import Role
from ..webrtc.signaling import SignalingClient
from .media_source import LocalStream, MediaSource, RemoteStream, RenderSink

RoomPrompt = Callable[[], Union[str, Awaitable[str], None]]


@dataclass
class Session:
    """One call attempt. Never reused once torn down."""

    room: str
    coordinator: NegotiationCoordinator
    engine: PeerConnectionEngine
    data_channel: DataChannelSession
    local_stream: LocalStream
    transport: SignalingClient
    session_id: str
    remote_stream: RemoteStream = field(default_factory=RemoteStream)
    live: bool = True
    listener: Optional[asyncio.Task] = None

    @property
    def role(self) -> Role:
        return self.coordinator.role

    @property
    def state(self) -> NegotiationState:
        return self.coordinator.state


class CallSessionManager(LoggerMixin):
    """Starts calls, runs their negotiation effects and tears them down."""

    def __init__(
        self,
        config: CallConfig,
        media_source: Optional[MediaSource] = None,
        transport_factory: Optional[Callable[[], SignalingClient]] = None,
        engine_factory: Optional[Callable[[str], PeerConnectionEngine]] = None,
        room_prompt: Optional[RoomPrompt] = None,
        notify: Optional[Callable[[str], None]] = None,
        transcript: Optional[Transcript] = None,
    ):
        super().__init__()
        self.config = config
        self.media_source = media_source or MediaSource(config)
        self.transport_factory = transport_factory or (lambda: SignalingClient(config.signaling_url))
        self.engine_factory = engine_factory or (
            lambda session_id: PeerConnectionEngine(config.rtc_config, session_id)
        )
        self.room_prompt = room_prompt
        self.notify = notify
        self.transcript = transcript or Transcript()

        self.local_sink = RenderSink("localVideo")
        self.remote_sink = RenderSink("remoteVideo", record_path=config.record_path)

        self.session: Optional[Session] = None
        self._starting = False

    # Start

    async def start(self, room: Optional[str] = None) -> Session:
        """
        Acquire media, open signaling, validate the room and join it.

        Raises MediaUnavailable or EmptyRoomName before any session exists,
        and SessionActive while another call is live.

        The returned Session is provisional until a role is assigned: a
        'full' reply from the relay discards it without a call ever existing.
        """
        if self.session is not None or self._starting:
            raise SessionActive("A call is already in progress", {
                "room": self.session.room if self.session else None
            })

        self._starting = True
        try:
            return await self._start(room)
        finally:
            self._starting = False

    async def _start(self, room: Optional[str]) -> Session:
        debug_log(f"📞 [SessionManager] Starting call")

        try:
            local_stream = self.media_source.acquire()
        except MediaUnavailable as e:
            self._notify(f"Cannot access camera or screen: {e}")
            raise

        transport = self.transport_factory()
        try:
            await transport.open()
            room = await self._resolve_room(room)
        except Exception as e:
            if isinstance(e, EmptyRoomName):
                self._notify("No room name given, call not started")
            local_stream.stop_all_tracks()
            await transport.close()
            raise

        session_id = uuid.uuid4().hex
        session = Session(
            room=room,
            coordinator=NegotiationCoordinator(self.config.data_channel_label),
            engine=self.engine_factory(session_id),
            data_channel=DataChannelSession(self.transcript),
            local_stream=local_stream,
            transport=transport,
            session_id=session_id,
        )
        self.session = session

        for track in local_stream.tracks:
            session.engine.add_track(track)
        session.engine.add_callback('local_candidate', lambda candidate: self._schedule(
            self._dispatch(session, LocalCandidate(candidate))))
        session.engine.add_callback('track', lambda track: self._schedule(
            self._on_remote_track(session, track)))
        session.engine.add_callback('datachannel', lambda channel: self._on_remote_datachannel(
            session, channel))

        self.local_sink.attach(local_stream)
        session.listener = asyncio.create_task(self._listen(session))

        self.log_info(f"📞 [SessionManager] Joining room", {
            "room": room,
            "session_id": session_id,
            "source": local_stream.source
        })
        await self._dispatch(session, JoinRequested(room))
        return session

    async def _resolve_room(self, room: Optional[str]) -> str:
        if room is None and self.room_prompt is not None:
            room = self.room_prompt()
            if inspect.isawaitable(room):
                room = await room
        if room is None or not room.strip():
            raise EmptyRoomName("Room name must not be empty")
        return room.strip()

    # Event plumbing

    def _is_live(self, session: Session) -> bool:
        return session.live and self.session is session

    def _schedule(self, coro):
        return asyncio.ensure_future(coro)

    async def _listen(self, session: Session):
        """Feed signaling events to the coordinator in arrival order."""
        async for event, payload in session.transport.events():
            if not self._is_live(session):
                break
            debug_log(f"📨 [SessionManager] Signal received: {event}", {
                "session_id": session.session_id,
                "state": session.state.value
            })
            try:
                await self._dispatch(session, message_from_signal(event, payload))
            except RoomUnavailable as e:
                self._notify(f"Room '{session.room}' is full")
                self.log_warning(f"🚪 [SessionManager] Room unavailable", {"error": str(e)})
                await self._teardown(session, announce=False, reason="full")
                break
            except Exception as e:
                self.log_error(f"Error handling signal", {
                    "event": event,
                    "error": str(e),
                    "error_type": type(e).__name__
                })

        if self._is_live(session):
            self.log_warning(f"🔌 [SessionManager] Signaling transport lost", {
                "session_id": session.session_id,
                "state": session.state.value
            })
            self._notify("Connection to the signaling server was lost")
            await self._teardown(session, announce=False, reason="transport")

    async def _dispatch(self, session: Session, message):
        if not self._is_live(session):
            debug_log(f"🔒 [SessionManager] Dropping {type(message).__name__} for discarded session",
                      level="DEBUG")
            return
        transition = session.coordinator.dispatch(message)
        for effect in transition.effects:
            if not self._is_live(session):
                return
            await self._run_effect(session, effect)

    async def _run_effect(self, session: Session, effect):
        engine = session.engine

        if isinstance(effect, SendSignal):
            await self._emit(session, effect.event, effect.payload)
        elif isinstance(effect, CreateDataChannel):
            session.data_channel.create(engine, effect.label)
        elif isinstance(effect, CreateOffer):
            await self._call_engine(session, 'create_offer', OfferCreated)
        elif isinstance(effect, CreateAnswer):
            await self._call_engine(session, 'create_answer', AnswerCreated)
        elif isinstance(effect, SetLocalDescription):
            await self._call_engine(session, 'set_local_description', LocalDescriptionSet,
                                    effect.description)
        elif isinstance(effect, SetRemoteDescription):
            await self._call_engine(session, 'set_remote_description',
                                    lambda _: RemoteDescriptionSet(effect.description.get("type")),
                                    effect.description)
        elif isinstance(effect, AddRemoteCandidate):
            await self._call_engine(session, 'add_remote_candidate', None, effect.candidate)
        elif isinstance(effect, EndSession):
            await self._teardown(session, announce=False, reason=effect.reason)
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    async def _call_engine(self, session: Session, operation: str, completion, *args):
        """Await one engine operation, then feed its completion back unless the session is gone."""
        try:
            result = await getattr(session.engine, operation)(*args)
        except Exception as e:
            if self._is_live(session):
                await self._dispatch(session, EngineFailed(operation, str(e)))
            return
        if completion is not None and self._is_live(session):
            await self._dispatch(session, completion(result))

    async def _emit(self, session: Session, event: str, payload: Any = None):
        try:
            await session.transport.emit(event, payload)
        except TransportClosed as e:
            self.log_warning(f"⚠️ [SessionManager] Signal not sent, transport closed", {
                "event": event,
                "error": str(e)
            })

    async def _on_remote_track(self, session: Session, track: MediaStreamTrack):
        if not self._is_live(session):
            track.stop()
            return
        session.remote_stream.add_track(track)
        if self.remote_sink.stream is not session.remote_stream:
            self.remote_sink.attach(session.remote_stream)
        await self.remote_sink.consume(track)

    def _on_remote_datachannel(self, session: Session, channel: RTCDataChannel):
        if not self._is_live(session):
            channel.close()
            return
        session.data_channel.adopt(channel)

    # User operations

    def send_message(self, text: str):
        """Send chat text to the peer; raises ChannelNotOpen outside the open window."""
        if self.session is None:
            raise ChannelNotOpen("No call in progress")
        self.session.data_channel.send(text)

    async def hang_up(self):
        await self.teardown(reason="local")

    async def shutdown(self):
        await self.teardown(reason="shutdown")

    async def teardown(self, reason: str = "local"):
        """End the live call, if any. Safe to call any number of times."""
        session = self.session
        if session is None:
            debug_log(f"🔒 [SessionManager] Teardown requested with no live session", level="DEBUG")
            return
        await self._teardown(session, announce=True, reason=reason)

    async def _teardown(self, session: Session, announce: bool, reason: str):
        if not session.live:
            return
        session.live = False
        if self.session is session:
            self.session = None
        session.coordinator.dispatch(HangUpRequested())

        self.log_info(f"👋 [SessionManager] Tearing down session", {
            "session_id": session.session_id,
            "room": session.room,
            "reason": reason
        })

        if announce:
            await self._release_step("broadcast bye", self._emit(session, 'bye', session.room))
        await self._release_step("stop local tracks", session.local_stream.stop_all_tracks)
        await self._release_step("stop remote tracks", session.remote_stream.stop_all_tracks)
        await self._release_step("detach local sink", self.local_sink.detach())
        await self._release_step("detach remote sink", self.remote_sink.detach())
        await self._release_step("close peer connection", session.engine.close())
        await self._release_step("close data channel", session.data_channel.close)
        await self._release_step("close signaling", session.transport.close())

        listener = session.listener
        if listener is not None and listener is not asyncio.current_task() and not listener.done():
            listener.cancel()

        # A room that was full never hosted a call.
        if reason != "full":
            self.transcript.append("system", CLOSED_MARKER)
            self._notify("Call ended")

    async def _release_step(self, name: str, step):
        """Run one release step; failures are logged and never stop the rest."""
        try:
            if inspect.isawaitable(step):
                await step
            else:
                step()
        except Exception as e:
            self.log_error(f"Release step failed: {name}", {
                "error": str(e),
                "error_type": type(e).__name__
            })

    def _notify(self, text: str):
        if self.notify:
            self.notify(text)
        else:
            debug_log(f"📢 [SessionManager] {text}")

    def get_status(self) -> Dict[str, Any]:
        session = self.session
        if session is None:
            return {"active": False, "transcript_lines": len(self.transcript.entries)}
        return {
            "active": True,
            "session_id": session.session_id,
            "room": session.room,
            "role": session.role.value,
            "state": session.state.value,
            "channel_open": session.data_channel.is_open,
            "buffered_candidates": session.coordinator.pending_candidate_count,
            "discarded": dict(session.coordinator.discarded),
            "transcript_lines": len(self.transcript.entries)
        }
