"""
Mock protocol adapter for development and testing.

Simulates a messaging-protocol client closely enough to drive the whole
session lifecycle without a real network:
- unregistered credentials get a fresh QR payload every qr_interval seconds
- requesting a pairing code "completes" pairing after pairing_delay seconds
- registered credentials open immediately
- logout() wipes the credentials and closes with 401, close() closes with 428

With auto=False nothing happens on its own; tests push events with emit().
"""

import asyncio
import copy
import logging
import secrets
import string
from collections import deque
from typing import AsyncIterator, Deque, Dict, List, Optional

from ..storage import CredentialState
from .adapter import (
    AdapterEvent,
    CloseEvent,
    ConnectingEvent,
    ConnectionOptions,
    CredsUpdateEvent,
    OpenEvent,
    QrEvent,
)

logger = logging.getLogger(__name__)

LOGGED_OUT_CODE = 401
CONNECTION_CLOSED_CODE = 428

# Recent handles kept for inspection; older ones are dropped
MAX_TRACKED_HANDLES = 20

_CODE_ALPHABET = string.ascii_uppercase + string.digits


class MockConnectionHandle:
    """In-memory connection handle."""

    def __init__(
        self,
        credentials: CredentialState,
        auto: bool = True,
        qr_interval: float = 20.0,
        pairing_delay: float = 2.0,
    ):
        self.credentials = copy.deepcopy(credentials)
        self.auto = auto
        self.qr_interval = qr_interval
        self.pairing_delay = pairing_delay

        self.closed = False
        self.logged_out = False
        self.pairing_requests: List[str] = []
        self._user: Optional[Dict] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []

    @property
    def user(self) -> Optional[Dict]:
        return self._user

    @property
    def registered(self) -> bool:
        return self.credentials.registered

    def emit(self, event: AdapterEvent) -> None:
        """Queue an event for the consumer."""
        if isinstance(event, OpenEvent):
            self._user = event.user
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[AdapterEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, CloseEvent):
                return

    def start(self) -> None:
        """Begin the simulated handshake."""
        self._spawn(self._handshake())

    async def request_pairing_code(self, phone_number: str) -> str:
        if self.closed:
            raise ConnectionError("Connection closed")
        self.pairing_requests.append(phone_number)
        code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))
        if self.auto:
            self._spawn(self._complete_pairing(phone_number))
        return code

    async def logout(self) -> None:
        if self.closed:
            raise ConnectionError("Connection closed")
        self.logged_out = True
        self.credentials = CredentialState()
        self.emit(CredsUpdateEvent(credentials=CredentialState()))
        self._finish(LOGGED_OUT_CODE)

    async def close(self) -> None:
        self._finish(CONNECTION_CLOSED_CODE)

    def _finish(self, status_code: int) -> None:
        if self.closed:
            return
        self.closed = True
        for task in self._tasks:
            task.cancel()
        self.emit(CloseEvent(status_code=status_code))

    def _spawn(self, coro) -> None:
        self._tasks.append(asyncio.create_task(coro))

    async def _handshake(self) -> None:
        self.emit(ConnectingEvent())
        if self.registered:
            self.emit(OpenEvent(user=self.credentials.creds.get("me") or {}))
            return
        while not self.closed:
            self.emit(QrEvent(qr=f"2@{secrets.token_urlsafe(48)}"))
            await asyncio.sleep(self.qr_interval)

    async def _complete_pairing(self, phone_number: str) -> None:
        await asyncio.sleep(self.pairing_delay)
        if self.closed:
            return
        for task in self._tasks:
            if task is not asyncio.current_task():
                task.cancel()
        me = {"id": f"{phone_number}:1@s.whatsapp.net", "name": "Mock User"}
        self.credentials.creds.update({"registered": True, "me": me})
        self.emit(CredsUpdateEvent(credentials=copy.deepcopy(self.credentials)))
        self.emit(OpenEvent(user=me))
        logger.info(f"Mock pairing completed for {phone_number}")


class MockProtocolAdapter:
    """Adapter producing MockConnectionHandle instances."""

    def __init__(self, auto: bool = True, qr_interval: float = 20.0, pairing_delay: float = 2.0):
        self.auto = auto
        self.qr_interval = qr_interval
        self.pairing_delay = pairing_delay
        self.handles: Deque[MockConnectionHandle] = deque(maxlen=MAX_TRACKED_HANDLES)
        self.connection_count = 0
        self.connect_error: Optional[Exception] = None

    @property
    def last_handle(self) -> Optional[MockConnectionHandle]:
        return self.handles[-1] if self.handles else None

    async def connect(
        self, options: ConnectionOptions, credentials: CredentialState
    ) -> MockConnectionHandle:
        if self.connect_error is not None:
            raise self.connect_error

        handle = MockConnectionHandle(
            credentials,
            auto=self.auto,
            qr_interval=self.qr_interval,
            pairing_delay=self.pairing_delay,
        )
        self.handles.append(handle)
        self.connection_count += 1
        logger.info(f"Mock connection #{self.connection_count} opened as {options.browser[0]}")
        if self.auto:
            handle.start()
        return handle
