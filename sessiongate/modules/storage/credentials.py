"""
Credential persistence for the single managed session.

Two backends share the load/save contract:
- FileCredentialStore: one JSON file for creds plus one file per key,
  under the session directory
- RedisCredentialStore: creds string plus a hash of keys, under the
  session name
"""

import asyncio
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

CREDS_FILE = "creds.json"
KEYS_DIR = "keys"


class CredentialStoreError(Exception):
    """Credential material could not be read or written."""


@dataclass
class CredentialState:
    """
    Identity and key material for one session.

    Both mappings are opaque to the core. A key whose value is None is
    deleted on the next save.
    """

    creds: Dict[str, Any] = field(default_factory=dict)
    keys: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def registered(self) -> bool:
        """True once the session has completed authentication at least once."""
        return bool(self.creds.get("registered", False))

    def to_dict(self) -> Dict[str, Any]:
        return {"creds": self.creds, "keys": self.keys}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialState":
        return cls(creds=data.get("creds") or {}, keys=data.get("keys") or {})


class CredentialStore(Protocol):
    """Protocol for credential backends."""

    async def load(self) -> CredentialState:
        """Load stored credentials, or a fresh state if none exist."""
        ...

    async def save(self, state: CredentialState) -> None:
        """Persist credentials."""
        ...

    async def clear(self) -> None:
        """Forget all stored credentials; the next load starts fresh."""
        ...


def _safe_name(name: str) -> str:
    return name.replace("/", "__").replace(":", "-")


class FileCredentialStore:
    """Multi-file credential store rooted at a session directory."""

    def __init__(self, session_dir: str):
        self.session_dir = Path(session_dir)

    async def load(self) -> CredentialState:
        try:
            return await asyncio.to_thread(self._load_sync)
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"Failed to load credentials from {self.session_dir}: {e}") from e

    async def save(self, state: CredentialState) -> None:
        try:
            await asyncio.to_thread(self._save_sync, state)
        except (OSError, TypeError, ValueError) as e:
            raise CredentialStoreError(f"Failed to save credentials to {self.session_dir}: {e}") from e

    async def clear(self) -> None:
        try:
            await asyncio.to_thread(self._clear_sync)
        except OSError as e:
            raise CredentialStoreError(f"Failed to clear credentials in {self.session_dir}: {e}") from e
        logger.info(f"Cleared stored credentials in {self.session_dir}")

    def _clear_sync(self) -> None:
        (self.session_dir / CREDS_FILE).unlink(missing_ok=True)
        keys_root = self.session_dir / KEYS_DIR
        if keys_root.is_dir():
            shutil.rmtree(keys_root)

    def _load_sync(self) -> CredentialState:
        creds_path = self.session_dir / CREDS_FILE
        if not creds_path.exists():
            logger.info(f"No stored credentials in {self.session_dir}, starting fresh")
            return CredentialState()

        creds = json.loads(creds_path.read_text(encoding="utf-8"))

        keys: Dict[str, Dict[str, Any]] = {}
        keys_root = self.session_dir / KEYS_DIR
        if keys_root.is_dir():
            for type_dir in sorted(p for p in keys_root.iterdir() if p.is_dir()):
                entries = {}
                for key_file in sorted(type_dir.glob("*.json")):
                    entries[key_file.stem] = json.loads(key_file.read_text(encoding="utf-8"))
                keys[type_dir.name] = entries

        return CredentialState(creds=creds, keys=keys)

    def _save_sync(self, state: CredentialState) -> None:
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self._atomic_write(self.session_dir / CREDS_FILE, state.creds)

        for key_type, entries in state.keys.items():
            type_dir = self.session_dir / KEYS_DIR / _safe_name(key_type)
            type_dir.mkdir(parents=True, exist_ok=True)
            for key_id, value in entries.items():
                path = type_dir / f"{_safe_name(key_id)}.json"
                if value is None:
                    path.unlink(missing_ok=True)
                else:
                    self._atomic_write(path, value)

    @staticmethod
    def _atomic_write(path: Path, data: Any) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class RedisCredentialStore:
    """Redis-backed credential store keyed by session name."""

    def __init__(self, redis_client, session_name: str):
        """
        Initialize Redis credential store.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            session_name: Identifies the session's keys
        """
        self.redis = redis_client
        self.session_name = session_name
        self.creds_key = f"session:{session_name}:creds"
        self.keys_key = f"session:{session_name}:keys"

    async def load(self) -> CredentialState:
        try:
            raw_creds = await self.redis.get(self.creds_key)
            if not raw_creds:
                logger.info(f"No stored credentials for session '{self.session_name}', starting fresh")
                return CredentialState()

            raw_keys = await self.redis.hgetall(self.keys_key) or {}
        except Exception as e:
            raise CredentialStoreError(f"Failed to load credentials for '{self.session_name}': {e}") from e

        keys: Dict[str, Dict[str, Any]] = {}
        for field_name, value in raw_keys.items():
            key_type, _, key_id = field_name.partition(":")
            keys.setdefault(key_type, {})[key_id] = json.loads(value)

        return CredentialState(creds=json.loads(raw_creds), keys=keys)

    async def save(self, state: CredentialState) -> None:
        updates = {}
        removals = []
        for key_type, entries in state.keys.items():
            for key_id, value in entries.items():
                field_name = f"{key_type}:{key_id}"
                if value is None:
                    removals.append(field_name)
                else:
                    updates[field_name] = json.dumps(value)

        try:
            await self.redis.set(self.creds_key, json.dumps(state.creds))
            if updates:
                await self.redis.hset(self.keys_key, mapping=updates)
            if removals:
                await self.redis.hdel(self.keys_key, *removals)
        except Exception as e:
            raise CredentialStoreError(f"Failed to save credentials for '{self.session_name}': {e}") from e

    async def clear(self) -> None:
        try:
            await self.redis.delete(self.creds_key, self.keys_key)
        except Exception as e:
            raise CredentialStoreError(f"Failed to clear credentials for '{self.session_name}': {e}") from e
        logger.info(f"Cleared stored credentials for session '{self.session_name}'")


def build_credential_store(config, redis_client: Optional[Any] = None) -> CredentialStore:
    """
    Build the configured credential backend.

    Args:
        config: ConfigModule (or anything with get())
        redis_client: Required when credential_backend is "redis"
    """
    backend = config.get("credential_backend", "file")
    if backend == "redis":
        if redis_client is None:
            raise ValueError("credential_backend=redis requires a Redis client")
        logger.info(f"Using Redis credential store for session '{config.get('session_name')}'")
        return RedisCredentialStore(redis_client, config.get("session_name"))
    if backend == "file":
        logger.info(f"Using file credential store at {config.get('session_dir')}")
        return FileCredentialStore(config.get("session_dir"))
    raise ValueError(f"Unknown credential backend: {backend}")
