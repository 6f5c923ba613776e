"""
Session Connection Manager.

Owns the single protocol connection and drives the state machine:

    disconnected --start_connection()--> connecting --open--> connected
         ^                                   |                    |
         +-------------- close --------------+--------------------+

Every handle is tagged with a generation number. Events from a handle whose
generation is no longer current are dropped, so a superseded connection can
never write stale state. Non-logout closes schedule exactly one reconnect
after a fixed delay; the timer is cancelled by start_connection(),
disconnect() and shutdown().
"""

import asyncio
import logging
import re
from typing import Optional

from ..api.models import (
    SessionEvent,
    SessionSnapshot,
    SessionStatus,
    message_payload,
    status_payload,
)
from ..broadcast import EventBroadcaster
from ..storage import CredentialStore, CredentialStoreError
from .adapter import (
    AdapterEvent,
    CloseEvent,
    ConnectingEvent,
    ConnectionHandle,
    ConnectionOptions,
    CredsUpdateEvent,
    MessagesEvent,
    OpenEvent,
    ProtocolAdapter,
    QrEvent,
)
from .disconnect import DisconnectReason, classify_close
from .errors import AdapterFault, InvalidInput, InvalidPhoneNumber, InvalidState
from .phone import (
    LibPhoneNumberValidator,
    PhoneValidator,
    apply_region_corrections,
    digits_only,
    normalize_phone_number,
)
from .state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 3.0


def format_pairing_code(raw_code: str) -> str:
    """Insert a '-' every 4 characters: "ABCD1234" -> "ABCD-1234"."""
    return "-".join(re.findall(r".{1,4}", raw_code)) or raw_code


class SessionConnectionManager:
    def __init__(
        self,
        adapter: ProtocolAdapter,
        credential_store: CredentialStore,
        broadcaster: EventBroadcaster,
        validator: Optional[PhoneValidator] = None,
        options: Optional[ConnectionOptions] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ):
        """
        Initialize session manager.

        Args:
            adapter: Produces connection handles
            credential_store: Loads/persists credential material
            broadcaster: Receives normalized session events
            validator: Phone validator (libphonenumber by default)
            options: Options passed to every connection attempt
            reconnect_delay: Seconds to wait before reconnecting after a close
        """
        self.adapter = adapter
        self.store = credential_store
        self.broadcaster = broadcaster
        self.validator = validator or LibPhoneNumberValidator()
        self.options = options or ConnectionOptions()
        self.reconnect_delay = reconnect_delay

        self._state = SessionState()
        self._dispatch_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    # Queries

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def generation(self) -> int:
        return self._state.generation

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def snapshot(self) -> SessionSnapshot:
        """Immutable view of the current state."""
        return self._state.snapshot(reconnect_pending=self.reconnect_pending)

    # Operations

    async def start_connection(self) -> None:
        """
        Discard any prior handle and open a new connection.

        Raises:
            AdapterFault: Credentials could not be loaded or the adapter
                failed to connect. A reconnect is scheduled before raising.
        """
        self._cancel_reconnect()
        previous = self._discard_handle()
        generation = self._state.generation

        self._state.mark_connecting()
        self._state.clear_auth_artifacts()
        logger.info(f"Starting connection (generation {generation})")
        await self.broadcaster.broadcast(
            SessionEvent.STATUS, status_payload(SessionStatus.CONNECTING)
        )

        if previous is not None:
            await self._close_quietly(previous)

        try:
            credentials = await self.store.load()
            handle = await self.adapter.connect(self.options, credentials)
        except Exception as e:
            if generation != self._state.generation:
                raise AdapterFault(f"Superseded connection attempt failed: {e}") from e
            logger.error(f"Connection attempt (generation {generation}) failed: {e}")
            self._state.mark_disconnected(DisconnectReason.UNKNOWN.value)
            self._schedule_reconnect()
            await self.broadcaster.broadcast(
                SessionEvent.STATUS,
                status_payload(SessionStatus.DISCONNECTED, reason=DisconnectReason.UNKNOWN.value),
            )
            raise AdapterFault(f"Failed to start connection: {e}") from e

        if generation != self._state.generation:
            # disconnect() or another start_connection() won while we waited
            logger.info(f"Connection generation {generation} superseded before it was installed")
            await self._close_quietly(handle)
            return

        self._state.handle = handle
        self._dispatch_task = asyncio.create_task(
            self._run_dispatch(handle, generation), name=f"session-dispatch-{generation}"
        )

    async def request_pairing_code(self, raw_phone_number: Optional[str]) -> str:
        """
        Request a pairing code for an unregistered connection.

        Returns:
            Formatted code, e.g. "ABCD-1234"

        Raises:
            InvalidInput: No phone number given
            InvalidState: Already connected, registered, or no connection
            InvalidPhoneNumber: Number failed validation
            AdapterFault: Adapter failed to produce a code
        """
        if not raw_phone_number or not raw_phone_number.strip():
            raise InvalidInput("Phone number is required")

        handle = self._state.handle
        if handle is None or self._state.status == SessionStatus.CONNECTED or handle.registered:
            raise InvalidState("Already connected or no connection available")

        normalized = normalize_phone_number(raw_phone_number)
        candidate = apply_region_corrections(normalized)
        if len(candidate) < 2 or not self.validator.is_valid(candidate):
            raise InvalidPhoneNumber(f"Invalid phone number: {raw_phone_number}")

        generation = self._state.generation
        try:
            raw_code = await handle.request_pairing_code(digits_only(normalized))
        except Exception as e:
            raise AdapterFault(f"Failed to generate pairing code: {e}") from e

        if generation != self._state.generation:
            raise InvalidState("Connection changed while the pairing code was requested")
        if not raw_code:
            raise AdapterFault("Adapter returned an empty pairing code")

        code = format_pairing_code(raw_code)
        self._state.set_code(code)
        logger.info("Pairing code issued")
        await self.broadcaster.broadcast(SessionEvent.PAIRING_CODE, code)
        return code

    async def disconnect(self) -> None:
        """
        Log out, forget the stored credentials and stay disconnected.

        Raises:
            AdapterFault: Adapter logout failed; state is left untouched
        """
        handle = self._state.handle
        if handle is None:
            self._cancel_reconnect()
            if self._state.status == SessionStatus.DISCONNECTED:
                return
            # connect still in flight: invalidate it
            self._discard_handle()
            self._state.mark_disconnected()
            await self._announce_disconnected()
            return

        try:
            await handle.logout()
        except Exception as e:
            raise AdapterFault(str(e)) from e

        self._cancel_reconnect()
        announce = self._state.handle is handle or self._state.status != SessionStatus.DISCONNECTED
        if announce:
            self._discard_handle()
            self._state.mark_disconnected(DisconnectReason.LOGGED_OUT.value)
        logger.info("Session logged out")
        await self._forget_credentials()
        if announce:
            await self._announce_disconnected()

    async def restart(self) -> None:
        """
        Close the transport without logging out, then reconnect.

        Raises:
            AdapterFault: Closing the transport or reconnecting failed
        """
        handle = self._state.handle
        if handle is not None:
            try:
                await handle.close()
            except Exception as e:
                raise AdapterFault(str(e)) from e
        await self.start_connection()

    async def shutdown(self) -> None:
        """Stop timers and close the connection without logging out."""
        pending = [
            task
            for task in (self._reconnect_task, self._dispatch_task)
            if task is not None and task is not asyncio.current_task()
        ]
        self._cancel_reconnect()
        handle = self._discard_handle()
        if handle is not None:
            await self._close_quietly(handle)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Session manager shut down")

    # Event dispatch

    async def _run_dispatch(self, handle: ConnectionHandle, generation: int) -> None:
        """Consume one handle's event stream in order."""
        try:
            async for event in handle.events():
                if generation != self._state.generation:
                    logger.debug(f"Dropping {type(event).__name__} from stale generation {generation}")
                    return
                try:
                    await self._dispatch(event, generation)
                except Exception:
                    logger.exception(f"Error handling {type(event).__name__}")
                if isinstance(event, CloseEvent):
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Event stream for generation {generation} failed: {e}")
            if generation == self._state.generation:
                await self._on_close(CloseEvent(error=str(e)), generation)
            return

        if generation == self._state.generation and self._state.handle is handle:
            logger.warning(f"Event stream for generation {generation} ended without a close event")
            await self._on_close(CloseEvent(), generation)

    async def _dispatch(self, event: AdapterEvent, generation: int) -> None:
        if isinstance(event, QrEvent):
            await self._on_qr(event)
        elif isinstance(event, OpenEvent):
            await self._on_open(event)
        elif isinstance(event, CloseEvent):
            await self._on_close(event, generation)
        elif isinstance(event, ConnectingEvent):
            await self._on_connecting()
        elif isinstance(event, CredsUpdateEvent):
            await self._on_creds_update(event)
        elif isinstance(event, MessagesEvent):
            await self._on_messages(event)
        else:
            logger.warning(f"Ignoring unknown adapter event: {event!r}")

    async def _on_qr(self, event: QrEvent) -> None:
        self._state.set_qr(event.qr)
        logger.info("QR code received, waiting for scan")
        await self.broadcaster.broadcast(SessionEvent.QR, event.qr)

    async def _on_open(self, event: OpenEvent) -> None:
        user = event.user or (self._state.handle.user if self._state.handle else None)
        self._state.mark_connected(user)
        logger.info(f"Connected as {user}")
        await self.broadcaster.broadcast(
            SessionEvent.STATUS, status_payload(SessionStatus.CONNECTED, user=user)
        )

    async def _on_connecting(self) -> None:
        self._state.mark_connecting()
        await self.broadcaster.broadcast(
            SessionEvent.STATUS, status_payload(SessionStatus.CONNECTING)
        )

    async def _on_close(self, event: CloseEvent, generation: int) -> None:
        reason = classify_close(event.status_code)
        self._state.handle = None
        if self._dispatch_task is asyncio.current_task():
            self._dispatch_task = None
        self._state.mark_disconnected(reason.value)

        if reason.reconnects:
            logger.info(
                f"Connection closed ({reason.value}, code={event.status_code}), "
                f"reconnecting in {self.reconnect_delay}s"
            )
            self._schedule_reconnect()
        else:
            logger.info("Connection closed by logout, not reconnecting")

        await self.broadcaster.broadcast(
            SessionEvent.STATUS,
            status_payload(SessionStatus.DISCONNECTED, reason=reason.value),
        )

    async def _on_creds_update(self, event: CredsUpdateEvent) -> None:
        try:
            await self.store.save(event.credentials)
        except CredentialStoreError as e:
            logger.error(f"Failed to persist credential update: {e}")

    async def _forget_credentials(self) -> None:
        """Drop stored credentials after a logout so the next connect starts unregistered."""
        try:
            await self.store.clear()
        except CredentialStoreError as e:
            logger.error(f"Failed to clear credentials after logout: {e}")

    async def _on_messages(self, event: MessagesEvent) -> None:
        if not event.messages:
            return
        await self.broadcaster.broadcast(
            SessionEvent.NEW_MESSAGE, message_payload(event.messages[0])
        )

    # Handle and timer ownership

    def _discard_handle(self) -> Optional[ConnectionHandle]:
        """Invalidate the current generation and release its handle."""
        self._state.generation += 1
        handle, self._state.handle = self._state.handle, None
        task, self._dispatch_task = self._dispatch_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        return handle

    async def _close_quietly(self, handle: ConnectionHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Failed to close superseded connection: {e}")

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(self.reconnect_delay), name="session-reconnect"
        )

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            logger.debug("Pending reconnect cancelled")

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        try:
            await self.start_connection()
        except AdapterFault as e:
            logger.error(f"Reconnect attempt failed: {e}")

    async def _announce_disconnected(self) -> None:
        await self.broadcaster.broadcast(
            SessionEvent.STATUS, status_payload(SessionStatus.DISCONNECTED)
        )
