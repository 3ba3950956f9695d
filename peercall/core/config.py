"""
Configuration management for peercall.
"""
import os
import sys
from dataclasses import dataclass
from typing import Optional

from aiortc import RTCConfiguration, RTCIceServer


def _default_capture_formats():
    """FFmpeg device formats for camera and screen capture on this platform."""
    if sys.platform == "darwin":
        return ("default:none", "avfoundation", "Capture screen 0", "avfoundation")
    if sys.platform.startswith("win"):
        return ("video=Integrated Camera", "dshow", "desktop", "gdigrab")
    return ("/dev/video0", "v4l2", ":0.0", "x11grab")


@dataclass
class CallConfig:
    """Call client and relay server configuration settings."""

    # Signaling
    signaling_url: str = "http://localhost:8080"
    host: str = "0.0.0.0"
    port: int = 8080

    # ICE servers
    stun_url: str = "stun:stun.l.google.com:19302"
    use_turn: bool = False
    turn_address: str = "0.0.0.0:3478?transport=udp"
    turn_username: str = "user"
    turn_password: str = "password"

    # Capture devices
    camera_device: str = ""
    camera_format: str = ""
    camera_video_size: str = "640x480"
    display_device: str = ""
    display_format: str = ""
    microphone_device: Optional[str] = None
    microphone_format: Optional[str] = None

    # Session
    data_channel_label: str = "data channel"
    record_path: Optional[str] = None
    log_level: str = "INFO"

    # WebRTC configuration
    rtc_config: Optional[RTCConfiguration] = None

    def __post_init__(self):
        """Initialize configuration from environment variables."""
        camera_device, camera_format, display_device, display_format = _default_capture_formats()

        self.signaling_url = os.environ.get('PEERCALL_SIGNALING_URL', self.signaling_url)
        self.host = os.environ.get('PEERCALL_HOST', self.host)
        self.port = int(os.environ.get('PEERCALL_PORT', self.port))

        # ICE settings
        self.stun_url = os.environ.get('PEERCALL_STUN_URL', self.stun_url)
        self.use_turn = os.environ.get('PEERCALL_USE_TURN', 'true' if self.use_turn else 'false') == 'true'
        self.turn_address = os.environ.get('TURN_ADDRESS', self.turn_address)
        self.turn_username = os.environ.get('TURN_USERNAME', self.turn_username)
        self.turn_password = os.environ.get('TURN_PASSWORD', self.turn_password)

        # Capture settings
        self.camera_device = os.environ.get('PEERCALL_CAMERA_DEVICE', self.camera_device or camera_device)
        self.camera_format = os.environ.get('PEERCALL_CAMERA_FORMAT', self.camera_format or camera_format)
        self.display_device = os.environ.get('PEERCALL_DISPLAY_DEVICE', self.display_device or display_device)
        self.display_format = os.environ.get('PEERCALL_DISPLAY_FORMAT', self.display_format or display_format)
        self.microphone_device = os.environ.get('PEERCALL_MIC_DEVICE', self.microphone_device)
        self.microphone_format = os.environ.get('PEERCALL_MIC_FORMAT', self.microphone_format)

        self.record_path = os.environ.get('PEERCALL_RECORD_PATH', self.record_path)
        self.log_level = os.environ.get('PEERCALL_LOG_LEVEL', self.log_level)

        self._build_rtc_config()

    def _build_rtc_config(self):
        """Build WebRTC configuration from the ICE settings."""
        ice_servers = [
            RTCIceServer(urls=self.stun_url)
        ]

        if self.use_turn:
            ice_servers.append(
                RTCIceServer(
                    urls=f"turn:{self.turn_address}",
                    username=self.turn_username,
                    credential=self.turn_password
                )
            )

        self.rtc_config = RTCConfiguration(iceServers=ice_servers)

    def get_camera_options(self) -> dict:
        """FFmpeg options passed to the camera player."""
        return {"video_size": self.camera_video_size, "framerate": "30"}

    def __str__(self) -> str:
        return f"CallConfig(signaling_url={self.signaling_url}, use_turn={self.use_turn}, port={self.port})"
