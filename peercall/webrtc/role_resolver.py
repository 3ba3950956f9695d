"""
Caller/Callee role resolution from room-membership signals.
"""
from enum import Enum
from typing import Optional

from ..core.exceptions import OutOfOrderSignal, RoomUnavailable
from ..core.logging import LoggerMixin
from .messages import InviteReceived, PeerJoined, RoomCreated, RoomFull, RoomJoined


class Role(Enum):
    UNASSIGNED = "unassigned"
    CALLER = "caller"
    CALLEE = "callee"


class RoleResolver(LoggerMixin):
    """Assigns exactly one role to a session, exactly once."""

    def __init__(self):
        super().__init__()
        self._role = Role.UNASSIGNED

    @property
    def role(self) -> Role:
        return self._role

    @property
    def assigned(self) -> bool:
        return self._role is not Role.UNASSIGNED

    def resolve(self, signal) -> Optional[Role]:
        """
        Feed one membership signal.

        Returns the newly assigned role, or None when the signal assigns
        nothing. Raises RoomUnavailable for a full room and OutOfOrderSignal
        when a role is already set.
        """
        if isinstance(signal, (RoomCreated, RoomJoined)):
            self.log_info(f"🚪 [RoleResolver] Room {type(signal).__name__}, waiting for peer", {
                "room": signal.room
            })
            return None

        if isinstance(signal, RoomFull):
            raise RoomUnavailable("Room already has two occupants", {"room": signal.room})

        if isinstance(signal, PeerJoined):
            return self._assign(Role.CALLER)

        if isinstance(signal, InviteReceived):
            return self._assign(Role.CALLEE)

        raise TypeError(f"Not a membership signal: {signal!r}")

    def _assign(self, role: Role) -> Role:
        if self._role is not Role.UNASSIGNED:
            reason = "stale" if self._role is role else "unexpected"
            raise OutOfOrderSignal(
                "Role already assigned",
                reason=reason,
                details={"current": self._role.value, "requested": role.value}
            )
        self._role = role
        self.log_info(f"🎭 [RoleResolver] Role assigned: {role.value}")
        return role
