import os
import pytest
from fastapi.testclient import TestClient


def pytest_configure(config):
    """Set up environment variables before any modules are imported."""
    os.environ.setdefault("HOST_BACKEND", "memory")
    os.environ.setdefault("PLUGIN_ID", "com.mattermost.secrets-plugin")
    os.environ.setdefault("SECRET_EXPIRY_TIME", "1440")
    os.environ.setdefault("SWEEP_INTERVAL", "3600")
    os.environ.setdefault("POST_DELETE_DELAY", "0")
    os.environ.setdefault("REQUEST_TIMEOUT", "5")
    os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:6379/15")


pytest_configure(None)

# Imported after the environment is in place.
from ephemeral_secrets.config import ConfigHolder, PluginConfiguration  # noqa: E402
from ephemeral_secrets.host.memory import MemoryHost  # noqa: E402
from ephemeral_secrets.plugin import Plugin  # noqa: E402
from tests.fixtures.clock import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def host():
    host = MemoryHost()
    host.add_user("author", "alice")
    host.add_user("bob", "bob")
    host.add_user("carol", "carol")
    host.add_channel("town-square", members=["author", "bob", "carol"])
    return host


@pytest.fixture
def config():
    return ConfigHolder(PluginConfiguration(secret_expiry_time=60, allow_copy_to_clipboard=True))


@pytest.fixture
def plugin(host, config, clock):
    plugin = Plugin(
        host,
        config=config,
        clock=clock,
        sweep_interval=3600,
        post_delete_delay=0,
        public_url="http://secrets.test",
    )
    plugin.service.bot_id = "secrets-bot-id"
    return plugin


@pytest.fixture
def service(plugin):
    return plugin.service


@pytest.fixture
def store(plugin):
    return plugin.store


@pytest.fixture
def client(plugin):
    from ephemeral_secrets.main import app

    with TestClient(app, raise_server_exceptions=False) as test_client:
        # Swap the plugin started by the lifespan for the seeded one.
        app.state.plugin = plugin
        yield test_client
