"""Close-reason classification for adapter disconnects."""

from enum import Enum
from typing import Optional


class DisconnectReason(str, Enum):
    """Why a connection handle closed."""

    LOGGED_OUT = "loggedOut"
    CONNECTION_LOST = "connectionLost"
    RESTART_REQUIRED = "restartRequired"
    TIMED_OUT = "timedOut"
    CONNECTION_REPLACED = "connectionReplaced"
    BAD_SESSION = "badSession"
    MULTIDEVICE_MISMATCH = "multideviceMismatch"
    FORBIDDEN = "forbidden"
    UNAVAILABLE_SERVICE = "unavailableService"
    UNKNOWN = "unknown"

    @property
    def reconnects(self) -> bool:
        """Only an explicit logout ends the session for good."""
        return self is not DisconnectReason.LOGGED_OUT


# Status codes reported by the protocol on close
STATUS_CODE_REASONS = {
    401: DisconnectReason.LOGGED_OUT,
    403: DisconnectReason.FORBIDDEN,
    408: DisconnectReason.TIMED_OUT,
    411: DisconnectReason.MULTIDEVICE_MISMATCH,
    428: DisconnectReason.CONNECTION_LOST,
    440: DisconnectReason.CONNECTION_REPLACED,
    500: DisconnectReason.BAD_SESSION,
    503: DisconnectReason.UNAVAILABLE_SERVICE,
    515: DisconnectReason.RESTART_REQUIRED,
}


def classify_close(status_code: Optional[int]) -> DisconnectReason:
    """
    Map a close status code to a DisconnectReason.

    Missing and unmapped codes classify as UNKNOWN, which still reconnects.
    """
    if status_code is None:
        return DisconnectReason.UNKNOWN
    return STATUS_CODE_REASONS.get(status_code, DisconnectReason.UNKNOWN)
