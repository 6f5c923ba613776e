import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sessiongate.modules.storage import (
    CredentialState,
    CredentialStoreError,
    FileCredentialStore,
    RedisCredentialStore,
    build_credential_store,
)


def test_registered_flag():
    assert CredentialState().registered is False
    assert CredentialState(creds={"registered": True}).registered is True


def test_from_dict_tolerates_missing_sections():
    state = CredentialState.from_dict({"creds": {"me": {"id": "1"}}})
    assert state.keys == {}
    assert state.to_dict() == {"creds": {"me": {"id": "1"}}, "keys": {}}


# File backend


@pytest.mark.asyncio
async def test_file_store_starts_fresh(tmp_path):
    store = FileCredentialStore(str(tmp_path / "session"))

    state = await store.load()

    assert state == CredentialState()


@pytest.mark.asyncio
async def test_file_store_persists_creds_and_keys(tmp_path):
    session_dir = tmp_path / "session"
    store = FileCredentialStore(str(session_dir))
    state = CredentialState(
        creds={"registered": True, "me": {"id": "123:1@s.whatsapp.net"}},
        keys={"pre-key": {"1": {"public": "abc"}, "2": {"public": "def"}}},
    )

    await store.save(state)

    assert json.loads((session_dir / "creds.json").read_text())["registered"] is True
    assert (session_dir / "keys" / "pre-key" / "1.json").exists()
    assert await FileCredentialStore(str(session_dir)).load() == state


@pytest.mark.asyncio
async def test_file_store_deletes_none_keys(tmp_path):
    store = FileCredentialStore(str(tmp_path))
    await store.save(CredentialState(keys={"session": {"a": {"v": 1}, "b": {"v": 2}}}))

    await store.save(CredentialState(keys={"session": {"a": None}}))

    loaded = await store.load()
    assert loaded.keys == {"session": {"b": {"v": 2}}}


@pytest.mark.asyncio
async def test_file_store_sanitizes_key_ids(tmp_path):
    store = FileCredentialStore(str(tmp_path))

    await store.save(CredentialState(keys={"sender-key": {"group/1:2": {"v": 1}}}))

    assert (tmp_path / "keys" / "sender-key" / "group__1-2.json").exists()


@pytest.mark.asyncio
async def test_file_store_clear_starts_fresh(tmp_path):
    store = FileCredentialStore(str(tmp_path))
    await store.save(
        CredentialState(creds={"registered": True}, keys={"pre-key": {"1": {"public": "abc"}}})
    )

    await store.clear()
    await store.clear()

    assert not (tmp_path / "creds.json").exists()
    assert not (tmp_path / "keys").exists()
    assert await store.load() == CredentialState()


@pytest.mark.asyncio
async def test_file_store_corrupt_creds_raise(tmp_path):
    (tmp_path / "creds.json").write_text("{not json")
    store = FileCredentialStore(str(tmp_path))

    with pytest.raises(CredentialStoreError):
        await store.load()


# Redis backend


@pytest.mark.asyncio
async def test_redis_store_starts_fresh(mock_redis):
    store = RedisCredentialStore(mock_redis, "main")

    assert await store.load() == CredentialState()
    mock_redis.get.assert_awaited_once_with("session:main:creds")


@pytest.mark.asyncio
async def test_redis_store_save(mock_redis):
    store = RedisCredentialStore(mock_redis, "main")
    state = CredentialState(
        creds={"registered": True},
        keys={"pre-key": {"1": {"public": "abc"}, "2": None}},
    )

    await store.save(state)

    mock_redis.set.assert_awaited_once_with("session:main:creds", json.dumps({"registered": True}))
    mock_redis.hset.assert_awaited_once_with(
        "session:main:keys", mapping={"pre-key:1": json.dumps({"public": "abc"})}
    )
    mock_redis.hdel.assert_awaited_once_with("session:main:keys", "pre-key:2")


@pytest.mark.asyncio
async def test_redis_store_load(mock_redis):
    mock_redis.get.return_value = json.dumps({"registered": True})
    mock_redis.hgetall.return_value = {"app-state-sync-key:AAA": json.dumps({"k": 1})}
    store = RedisCredentialStore(mock_redis, "main")

    state = await store.load()

    assert state.registered is True
    assert state.keys == {"app-state-sync-key": {"AAA": {"k": 1}}}


@pytest.mark.asyncio
async def test_redis_store_clear(mock_redis):
    store = RedisCredentialStore(mock_redis, "main")

    await store.clear()

    mock_redis.delete.assert_awaited_once_with("session:main:creds", "session:main:keys")


@pytest.mark.asyncio
async def test_redis_store_wraps_errors(mock_redis):
    mock_redis.set = AsyncMock(side_effect=ConnectionError("refused"))
    store = RedisCredentialStore(mock_redis, "main")

    with pytest.raises(CredentialStoreError, match="refused"):
        await store.save(CredentialState())


# Factory


def _config(**values):
    config = MagicMock()
    config.get.side_effect = lambda key, default=None: values.get(key, default)
    return config


def test_build_file_store():
    store = build_credential_store(_config(credential_backend="file", session_dir="./s"))
    assert isinstance(store, FileCredentialStore)


def test_build_redis_store(mock_redis):
    store = build_credential_store(
        _config(credential_backend="redis", session_name="main"), mock_redis
    )
    assert isinstance(store, RedisCredentialStore)
    assert store.session_name == "main"


def test_build_redis_store_requires_client():
    with pytest.raises(ValueError, match="requires a Redis client"):
        build_credential_store(_config(credential_backend="redis", session_name="main"))


def test_build_unknown_backend():
    with pytest.raises(ValueError, match="Unknown credential backend"):
        build_credential_store(_config(credential_backend="s3"))
