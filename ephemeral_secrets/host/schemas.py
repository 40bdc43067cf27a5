"""
Host-side object shapes, matching the chat host's REST payloads.
"""

from typing import Any, Dict, List
from pydantic import BaseModel, ConfigDict, Field
from ephemeral_secrets.constants import SYSTEM_ADMIN_ROLE


class HostModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class Post(HostModel):
    id: str = ""
    user_id: str = ""
    channel_id: str = ""
    root_id: str = ""
    message: str = ""
    type: str = ""
    props: Dict[str, Any] = Field(default_factory=dict)
    create_at: int = 0

    @property
    def attachments(self) -> List[Dict[str, Any]]:
        attachments = self.props.get("attachments")
        if not isinstance(attachments, list):
            return []
        return [attachment for attachment in attachments if isinstance(attachment, dict)]


class PostList(HostModel):
    order: List[str] = Field(default_factory=list)
    posts: Dict[str, Post] = Field(default_factory=dict)

    def ordered(self) -> List[Post]:
        """
        Posts in the host's order, followed by any not referenced in it.
        """
        seen = set()
        result = []
        for post_id in self.order:
            if (post := self.posts.get(post_id)) is not None and post_id not in seen:
                seen.add(post_id)
                result.append(post)
        result.extend(post for post_id, post in self.posts.items() if post_id not in seen)
        return result


class User(HostModel):
    id: str
    username: str = ""
    is_bot: bool = False
    roles: str = ""

    @property
    def is_system_admin(self) -> bool:
        return SYSTEM_ADMIN_ROLE in self.roles.split()


class Bot(HostModel):
    user_id: str = ""
    username: str
    display_name: str = ""
    description: str = ""


class Channel(HostModel):
    id: str
    type: str = "O"
    name: str = ""
    team_id: str = ""


class ChannelStats(HostModel):
    channel_id: str = ""
    member_count: int = 0


class Command(HostModel):
    trigger: str
    display_name: str = ""
    description: str = ""
    auto_complete: bool = True
    auto_complete_desc: str = ""
    auto_complete_hint: str = ""
    method: str = "P"
    url: str = ""
    team_id: str = ""
