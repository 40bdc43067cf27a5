"""
Unit tests for ephemeral_secrets/secret/store.py.
"""

import pytest

from ephemeral_secrets.constants import KV_PAGE_SIZE
from ephemeral_secrets.secret.exceptions import Corrupt, InvalidID, StoreUnavailable
from ephemeral_secrets.secret.schemas import Secret
from ephemeral_secrets.secret.store import secret_key
from tests.fixtures.clock import T0


def make_secret(secret_id: str = "abc", expires_at: int = T0 + 1000, **kwargs) -> Secret:
    return Secret(
        id=secret_id,
        user_id="author",
        channel_id="town-square",
        message="hello",
        created_at=T0,
        expires_at=expires_at,
        **kwargs,
    )


def test_secret_key():
    assert secret_key("abc") == "secret_abc"


async def test_save_get_delete(store, host):
    secret = make_secret()
    await store.save(secret)
    assert "secret_abc" in host.kv
    assert await store.get("abc") == secret

    await store.delete("abc")
    assert await store.get("abc") is None
    # Deleting twice is fine.
    await store.delete("abc")


async def test_get_missing(store):
    assert await store.get("missing") is None
    assert await store.get_versioned("missing") == (None, None)


@pytest.mark.parametrize("operation", ["get", "delete"])
async def test_empty_id(store, operation):
    with pytest.raises(InvalidID):
        await getattr(store, operation)("")


async def test_save_empty_id(store):
    with pytest.raises(InvalidID):
        await store.save(make_secret(secret_id=""))


async def test_corrupt_record(store, host):
    host.kv["secret_xyz"] = b"{not json"
    await store.save(make_secret())

    with pytest.raises(Corrupt):
        await store.get("xyz")
    secrets = await store.list()
    assert [secret.id for secret in secrets] == ["abc"]

    await store.delete("xyz")
    assert "secret_xyz" not in host.kv


async def test_wrong_shape_is_corrupt(store, host):
    host.kv["secret_bad"] = b'{"viewed_by": "not-a-list"}'
    with pytest.raises(Corrupt):
        await store.get("bad")


async def test_list_filters_prefix(store, host):
    host.kv["secret_"] = b"{}"
    host.kv["settings"] = b"{}"
    host.kv["mmi_botid"] = b"bot"
    await store.save(make_secret("one"))
    await store.save(make_secret("two"))
    assert sorted(secret.id for secret in await store.list()) == ["one", "two"]


async def test_list_pages(store, host):
    for idx in range(KV_PAGE_SIZE + 5):
        host.kv[f"other_{idx:05d}"] = b"x"
    await store.save(make_secret("zzz"))
    assert [secret.id for secret in await store.list()] == ["zzz"]



async def test_list_with_keys_added_mid_listing(store, host, monkeypatch):
    monkeypatch.setattr("ephemeral_secrets.secret.store.KV_PAGE_SIZE", 2)
    for secret_id in ("b", "d", "f"):
        await store.save(make_secret(secret_id))
    kv_list = host.kv_list

    async def growing_kv_list(page, per_page):
        keys = await kv_list(page, per_page)
        if page == 0:
            host.kv["secret_a"] = make_secret("a").serialize()
        return keys

    monkeypatch.setattr(host, "kv_list", growing_kv_list)
    assert sorted(secret.id for secret in await store.list()) == ["b", "d", "f"]

async def test_list_expired(store):
    await store.save(make_secret("old", expires_at=T0 - 1))
    await store.save(make_secret("edge", expires_at=T0))
    await store.save(make_secret("live", expires_at=T0 + 1))
    await store.save(make_secret("never", expires_at=0))
    assert [secret.id for secret in await store.list_expired(T0)] == ["old"]


async def test_compare_and_save(store, host):
    secret = make_secret()
    await store.save(secret)
    current, raw = await store.get_versioned("abc")

    assert await store.compare_and_save(current.with_viewer("bob"), raw) is True
    # The stored bytes changed, so the same expectation no longer holds.
    assert await store.compare_and_save(current.with_viewer("carol"), raw) is False
    assert (await store.get("abc")).viewed_by == ["bob"]


async def test_host_failures(store, host):
    host.failing.update({"kv_set", "kv_get", "kv_delete", "kv_list", "kv_compare_and_set"})
    with pytest.raises(StoreUnavailable):
        await store.save(make_secret())
    with pytest.raises(StoreUnavailable):
        await store.get("abc")
    with pytest.raises(StoreUnavailable):
        await store.delete("abc")
    with pytest.raises(StoreUnavailable):
        await store.list()
    with pytest.raises(StoreUnavailable):
        await store.compare_and_save(make_secret(), None)


async def test_list_skips_unreadable_entries(store, host):
    await store.save(make_secret())
    host.failing.add("kv_get")
    assert await store.list() == []
