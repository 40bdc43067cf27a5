"""
In-process host, used by the test suite and for local development.
"""

import asyncio
import itertools
from typing import Dict, List, Optional, Set
from loguru import logger
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
from ephemeral_secrets.util import new_id


class MemoryHost:
    """
    Dict-backed host.  Every call yields to the event loop first, so
    concurrent callers interleave the way they would against a real host.
    Names listed in `failing` raise HostError when called.
    """

    def __init__(self):
        self.kv: Dict[str, bytes] = {}
        self.posts: Dict[str, Post] = {}
        self.users: Dict[str, User] = {}
        self.channels: Dict[str, Channel] = {}
        self.members: Dict[str, Set[str]] = {}
        self.commands: List[Command] = []
        self.ephemeral: List[tuple] = []
        self.deleted_posts: List[str] = []
        self.failing: Set[str] = set()
        self._sequence = itertools.count(1)

    async def _enter(self, name: str):
        await asyncio.sleep(0)
        if name in self.failing:
            raise HostError(f"{name} failed (injected)")

    # Seeding helpers.
    def add_user(
        self, user_id: str, username: Optional[str] = None, roles: str = "system_user"
    ) -> User:
        user = User(id=user_id, username=username or user_id, roles=roles)
        self.users[user_id] = user
        return user

    def add_channel(self, channel_id: str, members=(), channel_type: str = "O") -> Channel:
        channel = Channel(id=channel_id, type=channel_type, name=channel_id)
        self.channels[channel_id] = channel
        self.members[channel_id] = set(members)
        for user_id in members:
            if user_id not in self.users:
                self.add_user(user_id)
        return channel

    # Key/value store.
    async def kv_set(self, key: str, value: bytes) -> None:
        await self._enter("kv_set")
        self.kv[key] = bytes(value)

    async def kv_get(self, key: str) -> Optional[bytes]:
        await self._enter("kv_get")
        return self.kv.get(key)

    async def kv_delete(self, key: str) -> None:
        await self._enter("kv_delete")
        self.kv.pop(key, None)

    async def kv_list(self, page: int, per_page: int) -> List[str]:
        await self._enter("kv_list")
        keys = sorted(self.kv)
        return keys[page * per_page : (page + 1) * per_page]

    async def kv_compare_and_set(self, key: str, old: Optional[bytes], new: bytes) -> bool:
        await self._enter("kv_compare_and_set")
        if self.kv.get(key) != old:
            return False
        self.kv[key] = bytes(new)
        return True

    # Posts.
    async def create_post(self, post: Post) -> Post:
        await self._enter("create_post")
        if post.channel_id not in self.channels:
            raise HostNotFound(f"channel {post.channel_id} not found")
        created = post.model_copy(
            update={"id": post.id or new_id(), "create_at": next(self._sequence)}, deep=True
        )
        self.posts[created.id] = created
        return created.model_copy(deep=True)

    async def update_post(self, post: Post) -> Post:
        await self._enter("update_post")
        if post.id not in self.posts:
            raise HostNotFound(f"post {post.id} not found")
        existing = self.posts[post.id]
        updated = existing.model_copy(
            update={"message": post.message, "props": dict(post.props)}, deep=True
        )
        self.posts[post.id] = updated
        return updated.model_copy(deep=True)

    async def delete_post(self, post_id: str) -> None:
        await self._enter("delete_post")
        if self.posts.pop(post_id, None) is None:
            raise HostNotFound(f"post {post_id} not found")
        self.deleted_posts.append(post_id)

    async def get_post(self, post_id: str) -> Post:
        await self._enter("get_post")
        if (post := self.posts.get(post_id)) is None:
            raise HostNotFound(f"post {post_id} not found")
        return post.model_copy(deep=True)

    async def get_posts_for_channel(self, channel_id: str, page: int, per_page: int) -> PostList:
        await self._enter("get_posts_for_channel")
        posts = sorted(
            (post for post in self.posts.values() if post.channel_id == channel_id),
            key=lambda post: post.create_at,
            reverse=True,
        )[page * per_page : (page + 1) * per_page]
        return PostList(
            order=[post.id for post in posts],
            posts={post.id: post.model_copy(deep=True) for post in posts},
        )

    async def send_ephemeral_post(self, user_id: str, post: Post) -> Post:
        await self._enter("send_ephemeral_post")
        sent = post.model_copy(update={"id": new_id()}, deep=True)
        self.ephemeral.append((user_id, sent))
        return sent

    # Users and bots.
    async def get_user(self, user_id: str) -> User:
        await self._enter("get_user")
        if (user := self.users.get(user_id)) is None:
            raise HostNotFound(f"user {user_id} not found")
        return user

    async def get_user_by_username(self, username: str) -> User:
        await self._enter("get_user_by_username")
        for user in self.users.values():
            if user.username == username:
                return user
        raise HostNotFound(f"user {username} not found")

    async def create_bot(self, bot: Bot) -> Bot:
        await self._enter("create_bot")
        if any(user.username == bot.username for user in self.users.values()):
            raise HostError("store.sql_bot.save.exists.app_error")
        user = User(id=new_id(), username=bot.username, is_bot=True)
        self.users[user.id] = user
        return bot.model_copy(update={"user_id": user.id})

    # Channels.
    async def get_channel(self, channel_id: str) -> Channel:
        await self._enter("get_channel")
        if (channel := self.channels.get(channel_id)) is None:
            raise HostNotFound(f"channel {channel_id} not found")
        return channel

    async def get_channel_stats(self, channel_id: str) -> ChannelStats:
        await self._enter("get_channel_stats")
        if channel_id not in self.channels:
            raise HostNotFound(f"channel {channel_id} not found")
        return ChannelStats(
            channel_id=channel_id, member_count=len(self.members.get(channel_id, ()))
        )

    async def register_command(self, command: Command) -> None:
        await self._enter("register_command")
        self.commands = [c for c in self.commands if c.trigger != command.trigger]
        self.commands.append(command)
        logger.debug(f"Registered command /{command.trigger}")

    async def close(self) -> None:
        return None
