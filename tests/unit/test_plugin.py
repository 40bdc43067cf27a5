"""
Unit tests for plugin activation and configuration (ephemeral_secrets/plugin.py).
"""

import pytest

from ephemeral_secrets.constants import BOT_USERNAME, COMMAND_TRIGGER
from ephemeral_secrets.host.memory import MemoryHost
from ephemeral_secrets.plugin import Plugin
from ephemeral_secrets.secret.exceptions import HostUnavailable, InvalidInput


async def test_activate(plugin, host):
    await plugin.on_activate()
    try:
        bot = await host.get_user_by_username(BOT_USERNAME)
        assert bot.is_bot
        assert plugin.service.bot_id == bot.id
        (command,) = host.commands
        assert command.trigger == COMMAND_TRIGGER
        assert command.auto_complete_hint == "[message]"
        assert command.url == "http://secrets.test/api/v1/commands/secret"
        assert plugin.sweeper.running
    finally:
        await plugin.on_deactivate()
    assert not plugin.sweeper.running


async def test_activate_reuses_existing_bot(plugin, host):
    existing = host.add_user("existing-bot", BOT_USERNAME)
    await plugin.on_activate()
    try:
        assert plugin.service.bot_id == existing.id
    finally:
        await plugin.on_deactivate()


async def test_activate_without_bot(plugin, host):
    host.failing.update({"create_bot", "get_user_by_username"})
    with pytest.raises(HostUnavailable):
        await plugin.on_activate()
    assert not plugin.sweeper.running


async def test_activate_command_failure(plugin, host):
    host.failing.add("register_command")
    with pytest.raises(HostUnavailable):
        await plugin.on_activate()


def test_configuration_change(plugin):
    previous = plugin.config.get()
    config = plugin.on_configuration_change({"SecretExpiryTime": 5, "AllowCopyToClipboard": False})
    assert plugin.config.get() is config
    assert config.secret_expiry_time == 5

    with pytest.raises(InvalidInput):
        plugin.on_configuration_change({"SecretExpiryTime": 0})
    assert plugin.config.get() is config
    assert previous is not config


def test_from_settings(monkeypatch):
    from ephemeral_secrets.config import settings

    monkeypatch.setattr(settings, "host_backend", "memory")
    plugin = Plugin.from_settings(settings)
    assert isinstance(plugin.host, MemoryHost)
    assert plugin.config.get().secret_expiry_time == settings.secret_expiry_time
