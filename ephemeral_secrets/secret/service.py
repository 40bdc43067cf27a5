"""
Secret lifecycle: create, reveal, acknowledge, close, collect and expire.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Dict, Optional, Tuple
from loguru import logger
from ephemeral_secrets.config import ConfigHolder, settings
from ephemeral_secrets.constants import (
    FALLBACK_MEMBER_COUNT,
    MAX_VIEW_ATTEMPTS,
    PLACEHOLDER_SCAN_LIMIT,
)
from ephemeral_secrets.host import HostAPI, HostError
from ephemeral_secrets.host.schemas import Post
from ephemeral_secrets.secret.exceptions import (
    HostUnavailable,
    InvalidInput,
    InvalidParent,
    NotFound,
    SaveFailed,
    SecretError,
    StoreUnavailable,
)
from ephemeral_secrets.secret.response import status_response
from ephemeral_secrets.secret.schemas import Secret
from ephemeral_secrets.secret.store import KVSecretStore
from ephemeral_secrets.secret.util import (
    CLOSED_EPHEMERAL_TEXT,
    CLOSED_TEXT,
    EXPIRED_TEXT,
    UNAVAILABLE_TEXT,
    build_placeholder,
    expired_props,
    find_placeholder,
    revealed_text,
)
from ephemeral_secrets.util import Clock, TaskTracker, delayed, new_id, now_millis

UNKNOWN_USER = "Unknown User"


class RevealStatus(str, Enum):
    REVEALED = "revealed"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RevealOutcome:
    status: RevealStatus
    secret: Optional[Secret] = None
    author: str = UNKNOWN_USER

    @property
    def message(self) -> Optional[str]:
        if self.status is RevealStatus.REVEALED and self.secret is not None:
            return self.secret.message
        return None

    @classmethod
    def revealed(cls, secret: Secret, author: str) -> "RevealOutcome":
        return cls(RevealStatus.REVEALED, secret, author)

    @classmethod
    def expired(cls, secret: Secret) -> "RevealOutcome":
        return cls(RevealStatus.EXPIRED, secret)

    @classmethod
    def not_found(cls) -> "RevealOutcome":
        return cls(RevealStatus.NOT_FOUND)


class SecretService:
    """
    Owns the secret state machine.  Nothing here holds a lock across a
    store or host call; concurrent viewers are reconciled in `_record_viewer`.
    """

    def __init__(
        self,
        store: KVSecretStore,
        host: HostAPI,
        config: ConfigHolder,
        clock: Clock = now_millis,
        tasks: Optional[TaskTracker] = None,
        bot_id: str = "",
        plugin_id: str = settings.plugin_id,
        max_message_length: int = settings.max_message_length,
        post_delete_delay: float = settings.post_delete_delay,
    ):
        self.store = store
        self.host = host
        self.config = config
        self.clock = clock
        self.tasks = tasks or TaskTracker()
        self.bot_id = bot_id
        self.plugin_id = plugin_id
        self.max_message_length = max_message_length
        self.post_delete_delay = post_delete_delay

    async def create(
        self, author_id: str, channel_id: str, root_id: Optional[str], message: str
    ) -> Secret:
        """
        Validate and persist a new secret.  Posting the placeholder is up to the caller.
        """
        root_id = root_id or ""
        if not channel_id:
            raise InvalidInput("channel_id is required")
        if not message:
            raise InvalidInput("message is required")
        if len(message) > self.max_message_length:
            raise InvalidInput(
                f"message is too long ({len(message)} > {self.max_message_length} characters)"
            )
        if root_id:
            try:
                await self.host.get_post(root_id)
            except HostError as exc:
                raise InvalidParent(f"parent post {root_id} is not available: {exc}") from exc

        created_at = self.clock()
        secret = Secret(
            id=new_id(),
            user_id=author_id,
            channel_id=channel_id,
            root_id=root_id,
            message=message,
            viewed_by=[],
            created_at=created_at,
            expires_at=created_at + self.config.get().expiry_millis,
        )
        try:
            await self.store.save(secret)
        except StoreUnavailable as exc:
            raise SaveFailed(f"failed to save secret: {exc}") from exc
        logger.info(
            f"Created secret {secret.id=} {author_id=} {channel_id=} expires_at={secret.expires_at}"
        )
        return secret

    async def create_placeholder(self, secret: Secret) -> Post:
        """
        Post the visible stand-in for a secret into its channel/thread.
        """
        author = await self._author_name(secret.user_id)
        post = build_placeholder(secret, author, self.bot_id, self.plugin_id)
        try:
            created = await self.host.create_post(post)
        except HostError as exc:
            raise HostUnavailable(f"failed to create placeholder post: {exc}") from exc
        logger.info(f"Posted placeholder {created.id} for secret {secret.id}")
        return created

    async def reveal(self, viewer_id: str, secret_id: str) -> RevealOutcome:
        secret = await self.store.get(secret_id)
        if secret is None:
            return RevealOutcome.not_found()

        if secret.is_expired(self.clock()):
            # Deletion is left to the sweeper; only the placeholder changes here.
            await self._mark_placeholder_expired(secret)
            return RevealOutcome.expired(secret)

        try:
            secret, added = await self._record_viewer(viewer_id, secret_id)
        except NotFound:
            return RevealOutcome.not_found()

        author = await self._author_name(secret.user_id)
        await self._send_revealed(viewer_id, secret, author)
        if added:
            self.schedule_completion_check(secret)
        return RevealOutcome.revealed(secret, author)

    async def mark_viewed(self, viewer_id: str, secret_id: str) -> None:
        """
        Record an acknowledgement without delivering anything.
        """
        secret, added = await self._record_viewer(viewer_id, secret_id)
        if added:
            self.schedule_completion_check(secret)

    async def close(self, viewer_id: str, secret_id: str, post_id: str) -> Dict[str, Any]:
        """
        Per-viewer dismissal of the revealed content; the record is untouched.
        """
        secret = await self.store.get(secret_id)
        if secret is None:
            text = UNAVAILABLE_TEXT
        elif secret.is_expired(self.clock()):
            text = EXPIRED_TEXT
        else:
            text = CLOSED_TEXT
        logger.debug(f"Closing secret {secret_id=} for {viewer_id=} {post_id=}")
        ephemeral_text = CLOSED_EPHEMERAL_TEXT if text == CLOSED_TEXT else text
        return status_response(text, post_id=post_id, ephemeral_text=ephemeral_text)

    async def collect(self, secret: Secret) -> bool:
        """
        Destroy the secret once every channel member has viewed it.
        """
        member_count = await self._member_count(secret.channel_id)
        if len(secret.viewed_by) < member_count:
            logger.debug(
                f"Secret {secret.id} viewed by {len(secret.viewed_by)}/{member_count}, keeping"
            )
            return False

        await self.store.delete(secret.id)
        logger.info(f"Secret {secret.id} viewed by all {member_count} members, deleted")

        if (placeholder := await self._find_placeholder(secret)) is not None:
            self.tasks.spawn(
                delayed(self.post_delete_delay, partial(self._delete_post, placeholder.id)),
                name=f"delete-post-{placeholder.id}",
            )
        return True

    async def expire_sweep(self) -> int:
        """
        Destroy every secret past its lifetime, returning how many were removed.
        """
        logger.debug("Checking for expired secrets")
        removed = 0
        for secret in await self.store.list_expired(self.clock()):
            await self._mark_placeholder_expired(secret)
            try:
                await self.store.delete(secret.id)
            except StoreUnavailable as exc:
                logger.error(f"Failed to delete expired secret {secret.id=}: {exc}")
                continue
            removed += 1
            logger.debug(f"Deleted expired secret {secret.id=}")
        if removed:
            logger.success(f"Removed {removed} expired secret(s)")
        return removed

    def schedule_completion_check(self, secret: Secret):
        self.tasks.spawn(self._completion_check(secret), name=f"collect-{secret.id}")

    async def _completion_check(self, secret: Secret):
        try:
            await self.collect(secret)
        except SecretError as exc:
            logger.error(f"Completion check failed for {secret.id=}: {exc}")

    async def _record_viewer(self, viewer_id: str, secret_id: str) -> Tuple[Secret, bool]:
        """
        Add the viewer to `viewed_by` without losing concurrent additions.

        Each attempt reads the record, writes it back with the viewer appended
        only if it is unchanged since the read, then reads it again to confirm
        the viewer is present.  Returns the confirmed record and whether this
        call added the viewer.
        """
        for attempt in range(1, MAX_VIEW_ATTEMPTS + 1):
            secret, raw = await self.store.get_versioned(secret_id)
            if secret is None:
                raise NotFound(f"secret {secret_id} not found")
            if secret.has_viewed(viewer_id):
                return secret, False

            if not await self.store.compare_and_save(secret.with_viewer(viewer_id), raw):
                logger.debug(f"Concurrent update of {secret_id=}, retrying ({attempt=})")
                continue

            current = await self.store.get(secret_id)
            if current is None:
                raise NotFound(f"secret {secret_id} was deleted")
            if current.has_viewed(viewer_id):
                return current, True
            logger.warning(f"Viewer {viewer_id} missing from {secret_id=} after write ({attempt=})")
        raise StoreUnavailable(
            f"could not record {viewer_id} on secret {secret_id} after {MAX_VIEW_ATTEMPTS} attempts"
        )

    async def _member_count(self, channel_id: str) -> int:
        count = 0
        try:
            await self.host.get_channel(channel_id)
            stats = await self.host.get_channel_stats(channel_id)
            count = stats.member_count
        except HostError as exc:
            logger.error(f"Failed to get member count for {channel_id=}: {exc}")
        if count <= 0:
            count = FALLBACK_MEMBER_COUNT
        return count

    async def _author_name(self, user_id: str) -> str:
        try:
            return (await self.host.get_user(user_id)).username or UNKNOWN_USER
        except HostError as exc:
            logger.error(f"Failed to get user {user_id=}: {exc}")
            return UNKNOWN_USER

    async def _send_revealed(self, viewer_id: str, secret: Secret, author: str):
        post = Post(
            user_id=self.bot_id,
            channel_id=secret.channel_id,
            root_id=secret.root_id,
            message=revealed_text(author, secret.message),
            props={"secret_id": secret.id},
        )
        try:
            await self.host.send_ephemeral_post(viewer_id, post)
        except HostError as exc:
            logger.error(f"Failed to deliver secret {secret.id} to {viewer_id=}: {exc}")

    async def _find_placeholder(self, secret: Secret) -> Optional[Post]:
        try:
            posts = await self.host.get_posts_for_channel(
                secret.channel_id, 0, PLACEHOLDER_SCAN_LIMIT
            )
        except HostError as exc:
            logger.error(f"Failed to get posts for channel {secret.channel_id=}: {exc}")
            return None
        return find_placeholder(posts.ordered(), secret.id)

    async def _mark_placeholder_expired(self, secret: Secret):
        if (placeholder := await self._find_placeholder(secret)) is None:
            logger.debug(f"No placeholder found for expired secret {secret.id=}")
            return
        update = placeholder.model_copy(update={"props": expired_props(secret.id)})
        try:
            await self.host.update_post(update)
        except HostError as exc:
            logger.error(f"Failed to mark post {placeholder.id} expired: {exc}")

    async def _delete_post(self, post_id: str):
        try:
            await self.host.delete_post(post_id)
            logger.debug(f"Deleted placeholder {post_id=}")
        except HostError as exc:
            logger.error(f"Failed to delete placeholder {post_id=}: {exc}")
