"""
Storage Module - Black Box Interface

Purpose: Persist the session's identity and key material
Interface: CredentialStore.load(), CredentialStore.save(), CredentialStore.clear()
Hidden: File layout, Redis keys, serialization

The credential payload is opaque: it is owned by the protocol adapter and
only round-tripped here. Backends are interchangeable.
"""

from .credentials import (
    CredentialState,
    CredentialStore,
    CredentialStoreError,
    FileCredentialStore,
    RedisCredentialStore,
    build_credential_store,
)

__all__ = [
    "CredentialState",
    "CredentialStore",
    "CredentialStoreError",
    "FileCredentialStore",
    "RedisCredentialStore",
    "build_credential_store",
]
