"""
API Module - Black Box Interface

Purpose: Shared data models for HTTP routing and realtime events
Interface: Request/response models, SessionSnapshot, event names
Hidden: Serialization details

The HTTP routes live in sessiongate.main and contain no business logic.
All logic is delegated to the session manager.
"""

from .models import (
    ErrorResponse,
    HealthResponse,
    RequestCodeRequest,
    RequestCodeResponse,
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
    StatusResponse,
    SuccessResponse,
    message_payload,
    status_payload,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "RequestCodeRequest",
    "RequestCodeResponse",
    "SessionEvent",
    "SessionSnapshot",
    "SessionStatus",
    "StatusResponse",
    "SuccessResponse",
    "message_payload",
    "status_payload",
]
