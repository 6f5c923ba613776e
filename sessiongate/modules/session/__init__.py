"""
Session Module - Black Box Interface

Purpose: Manage the lifecycle of the single messaging-protocol session
Interface: start_connection(), request_pairing_code(), disconnect(), restart(), snapshot()
Hidden: Connection handle ownership, generation tracking, reconnect timer, event dispatch

The protocol client itself is pluggable through the ProtocolAdapter contract.
"""

from .adapter import (
    CloseEvent,
    ConnectingEvent,
    ConnectionHandle,
    ConnectionOptions,
    CredsUpdateEvent,
    MessagesEvent,
    OpenEvent,
    ProtocolAdapter,
    QrEvent,
    load_adapter,
)
from .disconnect import DisconnectReason, classify_close
from .errors import AdapterFault, InvalidInput, InvalidPhoneNumber, InvalidState, SessionError
from .manager import SessionConnectionManager, format_pairing_code

__all__ = [
    "AdapterFault",
    "CloseEvent",
    "ConnectingEvent",
    "ConnectionHandle",
    "ConnectionOptions",
    "CredsUpdateEvent",
    "DisconnectReason",
    "InvalidInput",
    "InvalidPhoneNumber",
    "InvalidState",
    "MessagesEvent",
    "OpenEvent",
    "ProtocolAdapter",
    "QrEvent",
    "SessionConnectionManager",
    "SessionError",
    "classify_close",
    "format_pairing_code",
    "load_adapter",
]
