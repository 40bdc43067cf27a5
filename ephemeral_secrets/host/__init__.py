"""
Capabilities consumed from the embedding chat host.
"""

from typing import List, Optional, Protocol
from ephemeral_secrets.host.schemas import (
    Bot,
    Channel,
    ChannelStats,
    Command,
    Post,
    PostList,
    User,
)


class HostError(Exception):
    """
    Any failure reported by (or while talking to) the chat host.
    """


class HostNotFound(HostError):
    """
    The requested host object does not exist.
    """


class HostAPI(Protocol):
    # Key/value store, last writer wins.
    async def kv_set(self, key: str, value: bytes) -> None: ...

    async def kv_get(self, key: str) -> Optional[bytes]: ...

    async def kv_delete(self, key: str) -> None: ...

    async def kv_list(self, page: int, per_page: int) -> List[str]: ...

    async def kv_compare_and_set(
        self, key: str, old: Optional[bytes], new: bytes
    ) -> bool: ...

    # Posts.
    async def create_post(self, post: Post) -> Post: ...

    async def update_post(self, post: Post) -> Post: ...

    async def delete_post(self, post_id: str) -> None: ...

    async def get_post(self, post_id: str) -> Post: ...

    async def get_posts_for_channel(
        self, channel_id: str, page: int, per_page: int
    ) -> PostList: ...

    async def send_ephemeral_post(self, user_id: str, post: Post) -> Post: ...

    # Users and bots.
    async def get_user(self, user_id: str) -> User: ...

    async def get_user_by_username(self, username: str) -> User: ...

    async def create_bot(self, bot: Bot) -> Bot: ...

    # Channels.
    async def get_channel(self, channel_id: str) -> Channel: ...

    async def get_channel_stats(self, channel_id: str) -> ChannelStats: ...

    # Commands.
    async def register_command(self, command: Command) -> None: ...

    async def close(self) -> None: ...


def build_host(source) -> HostAPI:
    """
    Instantiate the host adapter selected in settings.
    """
    if source.host_backend == "memory":
        from ephemeral_secrets.host.memory import MemoryHost

        return MemoryHost()
    if source.host_backend == "mattermost":
        from ephemeral_secrets.host.mattermost import MattermostHost

        return MattermostHost(
            base_url=source.mattermost_url,
            token=source.mattermost_token,
            redis_client=source.redis_client,
            kv_namespace=f"plugin_kv:{source.plugin_id}:",
            team_id=source.mattermost_team_id,
        )
    raise ValueError(f"Unknown host backend: {source.host_backend}")
