"""
Placeholder post shapes, and locating a secret's placeholder among channel posts.
"""

from typing import Any, Dict, Iterable, Optional
from ephemeral_secrets.constants import (
    CLOSED_COLOR,
    SECRET_POST_TYPE,
    SECRET_TITLE,
    STATUS_TEXT,
)
from ephemeral_secrets.host.schemas import Post
from ephemeral_secrets.secret.schemas import Secret
from ephemeral_secrets.util import new_id

EXPIRED_TEXT = "This secret message has expired."
CLOSED_TEXT = "This secret message has been closed."
UNAVAILABLE_TEXT = "This secret message is no longer available."
CLOSED_EPHEMERAL_TEXT = "You've closed this secret message."


def plugin_url(plugin_id: str, path: str) -> str:
    return f"/plugins/{plugin_id}/api/v1/{path.lstrip('/')}"


def action(name: str, url: str) -> Dict[str, Any]:
    return {
        "id": new_id(),
        "name": name,
        "type": "button",
        "integration": {"url": url},
    }


def revealed_text(author: str, message: str) -> str:
    return f"**From @{author}:**\n\n```\n{message}\n```"


def build_placeholder(secret: Secret, author: str, bot_id: str, plugin_id: str) -> Post:
    """
    The visible stand-in for a secret.  Newer clients render it through the
    custom post type using `secret_id`; others get the view button.
    """
    return Post(
        user_id=bot_id,
        channel_id=secret.channel_id,
        root_id=secret.root_id,
        type=SECRET_POST_TYPE,
        props={
            "secret_id": secret.id,
            "attachments": [
                {
                    "title": SECRET_TITLE,
                    "text": f"@{author} has sent a secret message.",
                    "actions": [
                        action(
                            "View Secret",
                            plugin_url(plugin_id, f"secrets/view?secret_id={secret.id}"),
                        )
                    ],
                }
            ],
        },
    )


def expired_props(secret_id: str) -> Dict[str, Any]:
    return {
        "secret_id": secret_id,
        "expired": True,
        "attachments": [
            {
                "title": SECRET_TITLE,
                "text": EXPIRED_TEXT,
                "color": CLOSED_COLOR,
            }
        ],
    }


def revealed_attachment(secret: Secret, author: str, plugin_id: str) -> Dict[str, Any]:
    return {
        "title": SECRET_TITLE,
        "text": revealed_text(author, secret.message),
        "fields": [{"title": "Status", "value": STATUS_TEXT, "short": False}],
        "actions": [
            action("Close", plugin_url(plugin_id, f"secrets/close?secret_id={secret.id}")),
        ],
    }


def _action_urls(post: Post) -> Iterable[str]:
    for attachment in post.attachments:
        actions = attachment.get("actions")
        if not isinstance(actions, list):
            continue
        for item in actions:
            if not isinstance(item, dict):
                continue
            integration = item.get("integration")
            if isinstance(integration, dict) and isinstance(integration.get("url"), str):
                yield integration["url"]


def references_secret(post: Post, secret_id: str) -> bool:
    return post.props.get("secret_id") == secret_id


def legacy_references_secret(post: Post, secret_id: str) -> bool:
    """
    Older placeholders only carried the id inside the view button's URL.
    """
    return any(secret_id in url for url in _action_urls(post))


def find_placeholder(posts: Iterable[Post], secret_id: str) -> Optional[Post]:
    posts = list(posts)
    for post in posts:
        if references_secret(post, secret_id):
            return post
    for post in posts:
        if legacy_references_secret(post, secret_id):
            return post
    return None
