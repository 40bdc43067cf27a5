"""
Plugin root: wires the host, store, service and sweeper, and runs the
activation/deactivation hooks.
"""

from typing import Any, Dict, Optional
from loguru import logger
from pydantic import ValidationError
from ephemeral_secrets.config import ConfigHolder, PluginConfiguration, Settings, settings
from ephemeral_secrets.constants import (
    BOT_DESCRIPTION,
    BOT_DISPLAY_NAME,
    BOT_USERNAME,
    COMMAND_AUTOCOMPLETE_DESC,
    COMMAND_AUTOCOMPLETE_HINT,
    COMMAND_DESCRIPTION,
    COMMAND_DISPLAY_NAME,
    COMMAND_TRIGGER,
)
from ephemeral_secrets.host import HostAPI, HostError, HostNotFound, build_host
from ephemeral_secrets.host.schemas import Bot, Command
from ephemeral_secrets.secret.exceptions import HostUnavailable, InvalidInput
from ephemeral_secrets.secret.service import SecretService
from ephemeral_secrets.secret.store import KVSecretStore
from ephemeral_secrets.sweeper import Sweeper
from ephemeral_secrets.util import Clock, TaskTracker, now_millis


class Plugin:
    def __init__(
        self,
        host: HostAPI,
        config: Optional[ConfigHolder] = None,
        clock: Clock = now_millis,
        sweep_interval: float = settings.sweep_interval,
        post_delete_delay: float = settings.post_delete_delay,
        plugin_id: str = settings.plugin_id,
        max_message_length: int = settings.max_message_length,
        public_url: str = settings.public_url,
        team_id: str = settings.mattermost_team_id,
    ):
        self.host = host
        self.config = config or ConfigHolder()
        self.plugin_id = plugin_id
        self.public_url = public_url.rstrip("/")
        self.team_id = team_id
        self.tasks = TaskTracker()
        self.store = KVSecretStore(host)
        self.service = SecretService(
            self.store,
            host,
            self.config,
            clock=clock,
            tasks=self.tasks,
            plugin_id=plugin_id,
            max_message_length=max_message_length,
            post_delete_delay=post_delete_delay,
        )
        self.sweeper = Sweeper(self.service, sweep_interval)

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "Plugin":
        return cls(
            build_host(source),
            config=ConfigHolder.from_settings(source),
            sweep_interval=source.sweep_interval,
            post_delete_delay=source.post_delete_delay,
            plugin_id=source.plugin_id,
            max_message_length=source.max_message_length,
            public_url=source.public_url,
            team_id=source.mattermost_team_id,
        )

    async def on_activate(self):
        """
        Ensure the bot account exists, register `/secret` and start sweeping.
        """
        self.service.bot_id = await self.ensure_bot()
        try:
            await self.host.register_command(
                Command(
                    trigger=COMMAND_TRIGGER,
                    display_name=COMMAND_DISPLAY_NAME,
                    description=COMMAND_DESCRIPTION,
                    auto_complete=True,
                    auto_complete_desc=COMMAND_AUTOCOMPLETE_DESC,
                    auto_complete_hint=COMMAND_AUTOCOMPLETE_HINT,
                    url=f"{self.public_url}/api/v1/commands/{COMMAND_TRIGGER}",
                    team_id=self.team_id,
                )
            )
        except HostError as exc:
            raise HostUnavailable(f"failed to register command: {exc}") from exc
        self.sweeper.start()
        logger.success(f"Activated {self.plugin_id} with bot {self.service.bot_id}")

    async def ensure_bot(self) -> str:
        try:
            created = await self.host.create_bot(
                Bot(
                    username=BOT_USERNAME,
                    display_name=BOT_DISPLAY_NAME,
                    description=BOT_DESCRIPTION,
                )
            )
            logger.info(f"Created bot account {BOT_USERNAME}")
            return created.user_id
        except HostError as exc:
            logger.debug(f"Bot create failed ({exc}), looking up existing {BOT_USERNAME}")
        try:
            return (await self.host.get_user_by_username(BOT_USERNAME)).id
        except HostNotFound as exc:
            raise HostUnavailable(f"bot account {BOT_USERNAME} could not be created") from exc
        except HostError as exc:
            raise HostUnavailable(f"failed to look up bot account: {exc}") from exc

    async def on_deactivate(self):
        await self.sweeper.stop()
        await self.tasks.shutdown()
        await self.host.close()
        logger.info(f"Deactivated {self.plugin_id}")

    def on_configuration_change(self, values: Dict[str, Any]) -> PluginConfiguration:
        """
        Validate and swap in a new configuration snapshot.
        """
        try:
            config = PluginConfiguration.model_validate(values)
        except ValidationError as exc:
            raise InvalidInput(f"invalid plugin configuration: {exc}") from exc
        self.config.set(config)
        logger.info(f"Configuration updated: {config.model_dump()}")
        return config
