"""
Protocol client adapter contract.

The adapter is the external messaging-protocol implementation. Given
connection options and credential state it produces a ConnectionHandle that
emits a typed event stream and accepts outbound actions. The session manager
is the only consumer of handles.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple, Union

from ..storage import CredentialState

logger = logging.getLogger(__name__)


@dataclass
class ConnectionOptions:
    """Options passed to the adapter for every connection attempt."""

    browser: Tuple[str, str, str] = ("SessionGate", "Chrome", "120.0.0")
    print_qr_in_terminal: bool = False
    mark_online_on_connect: bool = True
    generate_high_quality_link_preview: bool = True


# Adapter events


@dataclass
class ConnectingEvent:
    """Transport is (re)handshaking."""


@dataclass
class QrEvent:
    """A QR payload is ready to be scanned."""

    qr: str


@dataclass
class OpenEvent:
    """Authentication completed and the connection is live."""

    user: Dict[str, Any]


@dataclass
class CloseEvent:
    """Connection closed. status_code is None when the protocol gave none."""

    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class CredsUpdateEvent:
    """New key material that must be persisted."""

    credentials: CredentialState


@dataclass
class MessagesEvent:
    """A batch of incoming messages."""

    messages: List[Dict[str, Any]] = field(default_factory=list)


AdapterEvent = Union[
    ConnectingEvent, QrEvent, OpenEvent, CloseEvent, CredsUpdateEvent, MessagesEvent
]


class ConnectionHandle(Protocol):
    """A live connection produced by the adapter."""

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        """Authenticated identity, once open."""
        ...

    @property
    def registered(self) -> bool:
        """True if the handle's credentials have completed authentication."""
        ...

    def events(self) -> AsyncIterator[AdapterEvent]:
        """Yield adapter events in order until the handle is closed."""
        ...

    async def request_pairing_code(self, phone_number: str) -> str:
        """Request a raw pairing code for a digits-only phone number."""
        ...

    async def logout(self) -> None:
        """Terminate the session, invalidating stored credentials."""
        ...

    async def close(self) -> None:
        """Close the transport, keeping credentials valid."""
        ...


class ProtocolAdapter(Protocol):
    """Factory for connection handles."""

    async def connect(
        self, options: ConnectionOptions, credentials: CredentialState
    ) -> ConnectionHandle:
        """Open a new connection using the given credentials."""
        ...


def load_adapter(dotted_path: str) -> ProtocolAdapter:
    """
    Instantiate an adapter class from a "package.module.ClassName" path.

    Raises:
        ValueError: If the path cannot be imported
    """
    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path:
        raise ValueError(f"Adapter path must be 'module.ClassName', got '{dotted_path}'")

    try:
        module = importlib.import_module(module_path)
        adapter_class = getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Could not load protocol adapter '{dotted_path}': {e}") from e

    logger.info(f"Loaded protocol adapter: {dotted_path}")
    return adapter_class()
