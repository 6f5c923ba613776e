"""
SessionGate shared data models.

These models define the structure of all data passed between
components: session snapshots, API requests/responses and realtime
event names.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Enums


class SessionStatus(str, Enum):
    """Connection status of the managed session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SessionEvent(str, Enum):
    """Realtime event names pushed to observers."""

    STATUS = "status-update"
    QR = "qr-code"
    PAIRING_CODE = "pairing-code"
    NEW_MESSAGE = "new-message"


# Snapshots


class SessionSnapshot(BaseModel):
    """Immutable view of SessionState handed out by the manager."""

    model_config = ConfigDict(frozen=True)

    status: SessionStatus = SessionStatus.DISCONNECTED
    qr: Optional[str] = None
    code: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    has_connection: bool = False
    reconnect_pending: bool = False
    last_disconnect_reason: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED and self.user is not None


# Request Models (API Input)


class RequestCodeRequest(BaseModel):
    """Request a pairing code for a phone number."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: Optional[str] = Field(
        None, alias="phoneNumber", description="Phone number in any common format"
    )


# Response Models (API Output)


class StatusResponse(BaseModel):
    """Current session status."""

    status: SessionStatus
    qr: Optional[str] = None
    code: Optional[str] = None
    connected: bool = False
    user: Optional[Dict[str, Any]] = None


class RequestCodeResponse(BaseModel):
    """Pairing code generated."""

    success: bool = True
    code: str
    message: str = "Pairing code generated successfully"


class SuccessResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    session: SessionStatus


# Event payloads


def status_payload(
    status: SessionStatus,
    user: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a status-update payload, omitting absent fields."""
    payload: Dict[str, Any] = {"status": status.value}
    if user is not None:
        payload["user"] = user
    if reason is not None:
        payload["reason"] = reason
    return payload


def message_payload(message: Dict[str, Any]) -> Dict[str, Any]:
    """Extract the metadata forwarded for an incoming message."""
    key = message.get("key") or {}
    return {
        "from": key.get("remoteJid"),
        "message": message.get("message"),
        "timestamp": message.get("messageTimestamp"),
    }
