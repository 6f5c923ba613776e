from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..api.models import SessionSnapshot, SessionStatus
from .adapter import ConnectionHandle


@dataclass
class SessionState:
    """
    Authoritative in-memory state of the managed session.

    Mutated only by SessionConnectionManager. The setters below keep the
    QR/pairing-code exclusivity and the user-only-when-connected rules.
    """

    status: SessionStatus = SessionStatus.DISCONNECTED
    handle: Optional[ConnectionHandle] = None
    generation: int = 0
    qr: Optional[str] = None
    code: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    last_disconnect_reason: Optional[str] = None

    def set_qr(self, qr: str) -> None:
        self.qr = qr
        self.code = None

    def set_code(self, code: str) -> None:
        self.code = code
        self.qr = None

    def clear_auth_artifacts(self) -> None:
        self.qr = None
        self.code = None

    def mark_connecting(self) -> None:
        self.status = SessionStatus.CONNECTING
        self.user = None

    def mark_connected(self, user: Optional[Dict[str, Any]]) -> None:
        self.status = SessionStatus.CONNECTED
        self.user = user
        self.clear_auth_artifacts()

    def mark_disconnected(self, reason: Optional[str] = None) -> None:
        self.status = SessionStatus.DISCONNECTED
        self.user = None
        self.clear_auth_artifacts()
        if reason is not None:
            self.last_disconnect_reason = reason

    def snapshot(self, reconnect_pending: bool = False) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            qr=self.qr,
            code=self.code,
            user=self.user,
            has_connection=self.handle is not None,
            reconnect_pending=reconnect_pending,
            last_disconnect_reason=self.last_disconnect_reason,
        )
