"""
Unit tests for the Mattermost adapter (ephemeral_secrets/host/mattermost.py).
Redis and the REST API are replaced with mocks.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from ephemeral_secrets.host import HostError, build_host
from ephemeral_secrets.host.mattermost import (
    COMPARE_AND_SET_LUA,
    DELETE_LUA,
    SET_LUA,
    HostUnreachable,
    MattermostHost,
)
from ephemeral_secrets.host.memory import MemoryHost
from ephemeral_secrets.host.schemas import Command, Post

NAMESPACE = "plugin_kv:com.mattermost.secrets-plugin:"
INDEX = "plugin_kv:com.mattermost.secrets-plugin__index"


@pytest.fixture
def redis_client():
    return AsyncMock()


@pytest.fixture
def mm(redis_client):
    host = MattermostHost(
        base_url="http://mm.test/",
        token="token",
        redis_client=redis_client,
        kv_namespace=NAMESPACE,
        team_id="team-1",
    )
    host._request = AsyncMock()
    return host


async def test_kv_keys_are_namespaced(mm, redis_client):
    redis_client.get.return_value = b"value"
    await mm.kv_set("secret_a", b"value")
    assert await mm.kv_get("secret_a") == b"value"
    await mm.kv_delete("secret_a")
    set_call, delete_call = redis_client.eval.await_args_list
    assert set_call.args == (SET_LUA, 2, f"{NAMESPACE}secret_a", INDEX, b"value", "secret_a")
    assert delete_call.args == (DELETE_LUA, 2, f"{NAMESPACE}secret_a", INDEX, "secret_a")
    redis_client.get.assert_awaited_once_with(f"{NAMESPACE}secret_a")


async def test_kv_errors_become_host_errors(mm, redis_client):
    redis_client.get.side_effect = RedisConnectionError("down")
    with pytest.raises(HostError):
        await mm.kv_get("secret_a")


async def test_kv_list(mm, redis_client):
    redis_client.zrange.return_value = [b"secret_a", b"secret_b"]
    assert await mm.kv_list(1, 2) == ["secret_a", "secret_b"]
    redis_client.zrange.assert_awaited_once_with(INDEX, 2, 3)


async def test_kv_list_pages_while_keys_are_added(mm, redis_client):
    index = ["secret_b", "secret_d", "secret_f", "secret_h"]

    async def zrange(name, start, end):
        assert name == INDEX
        return [key.encode() for key in sorted(index)[start : end + 1]]

    redis_client.zrange = AsyncMock(side_effect=zrange)
    seen = await mm.kv_list(0, 2)
    index.extend(["secret_a", "secret_e"])
    seen += await mm.kv_list(1, 2)
    seen += await mm.kv_list(2, 2)
    assert {"secret_b", "secret_d", "secret_f", "secret_h"} <= set(seen)
    assert redis_client.zrange.await_count == 3


async def test_kv_list_errors_become_host_errors(mm, redis_client):
    redis_client.zrange.side_effect = RedisConnectionError("down")
    with pytest.raises(HostError):
        await mm.kv_list(0, 10)


@pytest.mark.parametrize(
    "old,flag,result,expected",
    [
        (None, "1", 1, True),
        (b"before", "0", 0, False),
    ],
)
async def test_compare_and_set(mm, redis_client, old, flag, result, expected):
    redis_client.eval.return_value = result
    assert await mm.kv_compare_and_set("secret_a", old, b"after") is expected
    redis_client.eval.assert_awaited_once_with(
        COMPARE_AND_SET_LUA,
        2,
        f"{NAMESPACE}secret_a",
        INDEX,
        flag,
        old or b"",
        b"after",
        "secret_a",
    )


async def test_update_post_uses_patch(mm):
    mm._request.return_value = {"id": "p1", "props": {"expired": True}}
    updated = await mm.update_post(Post(id="p1", props={"expired": True}))
    assert updated.props == {"expired": True}
    mm._request.assert_awaited_once_with(
        "PUT", "/posts/p1/patch", payload={"message": "", "props": {"expired": True}}
    )


async def test_send_ephemeral_post(mm):
    mm._request.return_value = {"id": "e1", "channel_id": "c1"}
    await mm.send_ephemeral_post("bob", Post(channel_id="c1", message="hi"))
    method, path = mm._request.await_args.args
    payload = mm._request.await_args.kwargs["payload"]
    assert (method, path) == ("POST", "/posts/ephemeral")
    assert payload["user_id"] == "bob"
    assert payload["post"]["message"] == "hi"


async def test_register_command_creates(mm):
    mm._request.side_effect = [[], {"id": "cmd"}]
    await mm.register_command(Command(trigger="secret", url="http://svc/cmd"))
    create = mm._request.await_args_list[-1]
    assert create.args == ("POST", "/commands")
    assert create.kwargs["payload"]["team_id"] == "team-1"


async def test_register_command_updates_existing(mm):
    mm._request.side_effect = [[{"id": "cmd-1", "trigger": "secret"}], {"id": "cmd-1"}]
    await mm.register_command(Command(trigger="secret"))
    update = mm._request.await_args_list[-1]
    assert update.args == ("PUT", "/commands/cmd-1")
    assert update.kwargs["payload"]["id"] == "cmd-1"


async def test_register_command_without_team(redis_client):
    host = MattermostHost("http://mm.test", "token", redis_client, NAMESPACE)
    host._request = AsyncMock()
    await host.register_command(Command(trigger="secret"))
    host._request.assert_not_awaited()


def test_host_unreachable_is_host_error():
    assert issubclass(HostUnreachable, HostError)


def test_build_host():
    from ephemeral_secrets.config import Settings

    assert isinstance(build_host(Settings(host_backend="memory")), MemoryHost)
    mm = build_host(Settings(host_backend="mattermost", plugin_id="x"))
    assert isinstance(mm, MattermostHost)
    assert mm.kv_namespace == "plugin_kv:x:"
    assert mm.kv_index == "plugin_kv:x__index"
    with pytest.raises(ValueError):
        build_host(Settings(host_backend="carrier-pigeon"))
