"""
Data channel lifecycle and chat transcript for a call session.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional

from aiortc import RTCDataChannel

from ..core.exceptions import ChannelNotOpen
from ..core.logging import LoggerMixin, debug_log

READY_MARKER = "*** Channel is ready ***"
CLOSED_MARKER = "*** Channel is closed ***"


@dataclass
class TranscriptEntry:
    sender: str
    text: str

    def render(self) -> str:
        if self.sender == "me":
            return f"        ME: {self.text}"
        if self.sender == "peer":
            return f"PEER: {self.text}"
        return self.text


class Transcript:
    """Append-only record of the chat, shared across calls like the page's output box."""

    def __init__(self, listener: Optional[Callable[[TranscriptEntry], None]] = None):
        self.entries: List[TranscriptEntry] = []
        self.listener = listener

    def append(self, sender: str, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(sender, text)
        self.entries.append(entry)
        if self.listener:
            self.listener(entry)
        return entry

    def lines(self) -> List[str]:
        return [entry.render() for entry in self.entries]

    def texts_from(self, sender: str) -> List[str]:
        return [entry.text for entry in self.entries if entry.sender == sender]


class DataChannelSession(LoggerMixin):
    """Owns the single data channel of a session, whether created or adopted."""

    def __init__(self, transcript: Transcript):
        super().__init__()
        self.transcript = transcript
        self.channel: Optional[RTCDataChannel] = None
        self._open = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    def create(self, engine, label: str) -> RTCDataChannel:
        """Caller side: create the channel on the engine before the offer exists."""
        if self.channel is not None:
            raise RuntimeError("Data channel already bound")
        self.log_info(f"📡 [DataChannel] Creating data channel, I am the Caller", {"label": label})
        self._bind(engine.create_data_channel(label))
        return self.channel

    def adopt(self, channel: RTCDataChannel):
        """Callee side: take over the channel announced by the engine."""
        if self.channel is not None:
            self.log_warning(f"⚠️ [DataChannel] Ignoring second data channel", {"label": channel.label})
            return
        self.log_info(f"📡 [DataChannel] Received remote data channel, I am the Callee", {
            "label": channel.label,
            "ready_state": channel.readyState
        })
        self._bind(channel)
        # Remote channels can already be open when announced.
        if channel.readyState == "open":
            self._handle_open()

    def _bind(self, channel: RTCDataChannel):
        self.channel = channel

        @channel.on("open")
        def on_open():
            self._handle_open()

        @channel.on("message")
        def on_message(message):
            self._handle_message(message)

        @channel.on("close")
        def on_close():
            self.log_info(f"📡 [DataChannel] Channel closed by engine", {"label": channel.label})
            self._open = False

    def _handle_open(self):
        if self._open or self._closed:
            return
        self._open = True
        self.log_info(f"✅ [DataChannel] Channel open", {"label": self.channel.label})
        try:
            self.channel.send(READY_MARKER)
        except Exception as e:
            # Best effort only
            self.log_warning(f"⚠️ [DataChannel] Ready marker not sent", {"error": str(e)})

    def _handle_message(self, message):
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        debug_log(f"📥 [DataChannel] Message received", {"length": len(message)}, "DEBUG")
        self.transcript.append("peer", message)

    def send(self, text: str):
        """Send a user-authored message; only allowed while the channel is open."""
        if not self.is_open:
            raise ChannelNotOpen("Data channel is not open", {
                "bound": self.channel is not None,
                "closed": self._closed
            })
        self.channel.send(text)
        self.transcript.append("me", text)

    def close(self):
        """Close the channel; repeated calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self._open = False
        if self.channel is not None:
            self.log_info(f"📡 [DataChannel] Closing channel", {"label": self.channel.label})
            self.channel.close()
        self.channel = None
