"""
Local media acquisition and rendering sinks.
"""
from typing import Callable, List, Optional

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder
from av.error import FFmpegError

from ..core.config import CallConfig
from ..core.exceptions import MediaUnavailable
from ..core.logging import LoggerMixin, debug_log


class LocalStream:
    """Tracks captured from one or more players."""

    def __init__(self, source: str, players: List[MediaPlayer]):
        self.source = source
        self.players = players

    @property
    def tracks(self) -> List[MediaStreamTrack]:
        tracks = []
        for player in self.players:
            for track in (player.audio, player.video):
                if track is not None:
                    tracks.append(track)
        return tracks

    def stop_all_tracks(self):
        for track in self.tracks:
            track.stop()


class RemoteStream:
    """Tracks received from the peer."""

    def __init__(self):
        self.tracks: List[MediaStreamTrack] = []

    def add_track(self, track: MediaStreamTrack):
        self.tracks.append(track)

    def stop_all_tracks(self):
        for track in self.tracks:
            track.stop()


class MediaSource(LoggerMixin):
    """Captures the camera, falling back to a screen share when the camera fails."""

    def __init__(self, config: CallConfig, player_factory: Callable[..., MediaPlayer] = MediaPlayer):
        super().__init__()
        self.config = config
        self.player_factory = player_factory

    def acquire(self) -> LocalStream:
        """Return a local stream or raise MediaUnavailable."""
        try:
            player = self._open_camera()
            source = "camera"
        except (FFmpegError, OSError, ValueError) as camera_error:
            self.log_warning(f"⚠️ [MediaSource] Camera unavailable, trying screen share", {
                "device": self.config.camera_device,
                "error": str(camera_error)
            })
            try:
                player = self._open_display()
                source = "display"
            except (FFmpegError, OSError, ValueError) as display_error:
                raise MediaUnavailable("No capture device or screen share available", {
                    "camera_error": str(camera_error),
                    "display_error": str(display_error)
                }) from display_error

        players = [player]
        microphone = self._open_microphone()
        if microphone is not None:
            players.append(microphone)

        stream = LocalStream(source, players)
        self.log_info(f"🎥 [MediaSource] Got local stream", {
            "source": source,
            "tracks": [track.kind for track in stream.tracks]
        })
        return stream

    def _open_camera(self) -> MediaPlayer:
        player = self.player_factory(
            self.config.camera_device,
            format=self.config.camera_format,
            options=self.config.get_camera_options()
        )
        if player.video is None:
            raise ValueError(f"No video track on {self.config.camera_device}")
        return player

    def _open_display(self) -> MediaPlayer:
        player = self.player_factory(
            self.config.display_device,
            format=self.config.display_format,
            options={"draw_mouse": "1"}
        )
        if player.video is None:
            raise ValueError(f"No video track on {self.config.display_device}")
        return player

    def _open_microphone(self) -> Optional[MediaPlayer]:
        if not self.config.microphone_device:
            return None
        try:
            return self.player_factory(self.config.microphone_device, format=self.config.microphone_format)
        except (FFmpegError, OSError, ValueError) as e:
            self.log_warning(f"⚠️ [MediaSource] Microphone unavailable, continuing without audio", {
                "device": self.config.microphone_device,
                "error": str(e)
            })
            return None


class RenderSink(LoggerMixin):
    """
    Where a stream is shown. Holds the attached stream and, for remote media,
    one consumer per track so the peer connection keeps pulling frames.
    """

    def __init__(self, name: str, record_path: Optional[str] = None):
        super().__init__()
        self.name = name
        self.record_path = record_path
        self.stream = None
        self._consumers = []
        self._recording = False

    def attach(self, stream):
        self.stream = stream
        debug_log(f"🖥️ [RenderSink] Stream attached to {self.name}")

    async def consume(self, track: MediaStreamTrack):
        if track.kind == "video" and self.record_path and not self._recording:
            consumer = MediaRecorder(self.record_path)
            self._recording = True
        else:
            consumer = MediaBlackhole()
        consumer.addTrack(track)
        await consumer.start()
        self._consumers.append(consumer)

    async def detach(self):
        consumers, self._consumers = self._consumers, []
        for consumer in consumers:
            await consumer.stop()
        self._recording = False
        self.stream = None
        debug_log(f"🖥️ [RenderSink] {self.name} detached")
