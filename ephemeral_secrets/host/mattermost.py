"""
Host adapter backed by the Mattermost REST API (v4), with the key/value
primitives kept in redis.
"""

import asyncio
import aiohttp
import backoff
import orjson as json
import redis.asyncio as redis
from redis.exceptions import RedisError
from loguru import logger
from typing import Any, Dict, List, Optional
from ephemeral_secrets.host import HostError, HostNotFound
from ephemeral_secrets.host.schemas import (
    Bot,
    Channel,
    ChannelStats,
    Command,
    Post,
    PostList,
    User,
)

SET_LUA = """
redis.call('SET', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], 0, ARGV[2])
return 1
"""

DELETE_LUA = """
redis.call('DEL', KEYS[1])
redis.call('ZREM', KEYS[2], ARGV[1])
return 1
"""

COMPARE_AND_SET_LUA = """
local current = redis.call('GET', KEYS[1])
if ARGV[1] == '1' then
    if current then
        return 0
    end
elseif current ~= ARGV[2] then
    return 0
end
redis.call('SET', KEYS[1], ARGV[3])
redis.call('ZADD', KEYS[2], 0, ARGV[4])
return 1
"""


class HostUnreachable(HostError):
    """
    Transport-level failure (connection refused, timeout, ...).
    """


class MattermostHost:
    def __init__(
        self,
        base_url: str,
        token: str,
        redis_client: redis.Redis,
        kv_namespace: str,
        team_id: str = "",
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.redis = redis_client
        self.kv_namespace = kv_namespace
        # Sorted set of every key, outside the namespace so it never shadows one.
        self.kv_index = f"{kv_namespace.rstrip(':')}__index"
        self.team_id = team_id
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "X-Requested-With": "XMLHttpRequest",
                },
                timeout=self.timeout,
                json_serialize=lambda obj: json.dumps(obj).decode(),
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/api/v4{path}"
        try:
            async with self._client().request(
                method, url, json=payload, params=params
            ) as response:
                if response.status == 404:
                    raise HostNotFound(f"{method} {path}: not found")
                if response.status >= 400:
                    detail = await response.text()
                    raise HostError(f"{method} {path}: {response.status} {detail[:200]}")
                body = await response.read()
                return json.loads(body) if body else None
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise HostUnreachable(f"{method} {path}: {exc}") from exc

    @backoff.on_exception(
        backoff.expo,
        HostUnreachable,
        max_tries=3,
        max_time=15,
    )
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Idempotent reads are retried on transport errors.
        """
        return await self._request("GET", path, params=params)

    # Key/value store.
    def _key(self, key: str) -> str:
        return f"{self.kv_namespace}{key}"

    async def kv_set(self, key: str, value: bytes) -> None:
        try:
            await self.redis.eval(SET_LUA, 2, self._key(key), self.kv_index, value, key)
        except RedisError as exc:
            raise HostError(f"kv_set {key}: {exc}") from exc

    async def kv_get(self, key: str) -> Optional[bytes]:
        try:
            return await self.redis.get(self._key(key))
        except RedisError as exc:
            raise HostError(f"kv_get {key}: {exc}") from exc

    async def kv_delete(self, key: str) -> None:
        try:
            await self.redis.eval(DELETE_LUA, 2, self._key(key), self.kv_index, key)
        except RedisError as exc:
            raise HostError(f"kv_delete {key}: {exc}") from exc

    async def kv_list(self, page: int, per_page: int) -> List[str]:
        """
        Page through the key index; equal scores keep it in lexicographic order.
        """
        start = page * per_page
        try:
            keys = await self.redis.zrange(self.kv_index, start, start + per_page - 1)
        except RedisError as exc:
            raise HostError(f"kv_list: {exc}") from exc
        return [key.decode() if isinstance(key, bytes) else key for key in keys]

    async def kv_compare_and_set(self, key: str, old: Optional[bytes], new: bytes) -> bool:
        try:
            result = await self.redis.eval(
                COMPARE_AND_SET_LUA,
                2,
                self._key(key),
                self.kv_index,
                "1" if old is None else "0",
                old or b"",
                new,
                key,
            )
        except RedisError as exc:
            raise HostError(f"kv_compare_and_set {key}: {exc}") from exc
        return bool(result)

    # Posts.
    async def create_post(self, post: Post) -> Post:
        payload = post.model_dump(exclude={"id", "create_at", "user_id"})
        return Post.model_validate(await self._request("POST", "/posts", payload=payload))

    async def update_post(self, post: Post) -> Post:
        payload = {"message": post.message, "props": post.props}
        return Post.model_validate(
            await self._request("PUT", f"/posts/{post.id}/patch", payload=payload)
        )

    async def delete_post(self, post_id: str) -> None:
        await self._request("DELETE", f"/posts/{post_id}")

    async def get_post(self, post_id: str) -> Post:
        return Post.model_validate(await self._get(f"/posts/{post_id}"))

    async def get_posts_for_channel(self, channel_id: str, page: int, per_page: int) -> PostList:
        return PostList.model_validate(
            await self._get(
                f"/channels/{channel_id}/posts", params={"page": page, "per_page": per_page}
            )
        )

    async def send_ephemeral_post(self, user_id: str, post: Post) -> Post:
        payload = {
            "user_id": user_id,
            "post": post.model_dump(exclude={"id", "create_at", "user_id"}),
        }
        return Post.model_validate(await self._request("POST", "/posts/ephemeral", payload=payload))

    # Users and bots.
    async def get_user(self, user_id: str) -> User:
        return User.model_validate(await self._get(f"/users/{user_id}"))

    async def get_user_by_username(self, username: str) -> User:
        return User.model_validate(await self._get(f"/users/username/{username}"))

    async def create_bot(self, bot: Bot) -> Bot:
        payload = bot.model_dump(include={"username", "display_name", "description"})
        return Bot.model_validate(await self._request("POST", "/bots", payload=payload))

    # Channels.
    async def get_channel(self, channel_id: str) -> Channel:
        return Channel.model_validate(await self._get(f"/channels/{channel_id}"))

    async def get_channel_stats(self, channel_id: str) -> ChannelStats:
        return ChannelStats.model_validate(await self._get(f"/channels/{channel_id}/stats"))

    # Commands.
    async def register_command(self, command: Command) -> None:
        """
        Create the custom slash command, or update it in place if the trigger exists.
        """
        team_id = command.team_id or self.team_id
        if not team_id:
            logger.warning(f"No team configured, skipping registration of /{command.trigger}")
            return
        payload = command.model_dump()
        payload["team_id"] = team_id
        existing = await self._get("/commands", params={"team_id": team_id, "custom_only": "true"})
        for item in existing or []:
            if item.get("trigger") == command.trigger:
                payload["id"] = item["id"]
                await self._request("PUT", f"/commands/{item['id']}", payload=payload)
                logger.info(f"Updated slash command /{command.trigger} in {team_id=}")
                return
        await self._request("POST", "/commands", payload=payload)
        logger.success(f"Registered slash command /{command.trigger} in {team_id=}")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
