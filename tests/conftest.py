"""Shared fixtures for client tests."""

import pytest

from speechbot.client import SpeechBotClient
from speechbot.types import BotConfig
from tests.fakes import GatedConnector


@pytest.fixture
def connector():
    return GatedConnector()


@pytest.fixture
def config():
    return BotConfig(
        username="robot",
        password="hunter2",
        channels=["lobby"],
        reconnect_delay=0.05,
        hey_freq=60.0,
    )


@pytest.fixture
def client(config, connector):
    return SpeechBotClient(config, connector=connector)


@pytest.fixture
def events(client):
    """Every event the client emits, in order."""
    received = []
    client.on_any(received.append)
    return received
