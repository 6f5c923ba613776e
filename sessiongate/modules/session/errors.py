"""
Session error taxonomy.

Client errors (InvalidInput, InvalidState) are recovered at the API boundary
and returned as 4xx responses. AdapterFault is surfaced as a 5xx. Disconnects
are not exceptions: they are DisconnectReason values reported through events.
"""


class SessionError(Exception):
    """Base class for all errors raised by the session manager."""


class InvalidInput(SessionError):
    """Missing or malformed request input."""


class InvalidPhoneNumber(InvalidInput):
    """Phone number failed normalization or validation."""


class InvalidState(SessionError):
    """Operation attempted in a state that forbids it."""


class AdapterFault(SessionError):
    """Unexpected failure from the protocol client or credential store."""
