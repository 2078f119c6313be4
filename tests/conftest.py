"""
Shared fixtures for the hub client tests.

``FakeHub`` (see ``tests/_helpers.py``) stands in for the hub's HTTP API: it
is installed as the side effect of the pooled ``httpx.AsyncClient.request``.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from mcphub.services.hub import HubClient
from mcphub.services.state import StateStore
from tests._helpers import (
    FILES_SERVER,
    SAMPLE_CONFIG,
    WEATHER_SERVER,
    FakeHub,
    health_payload,
    python_command,
    unused_port,
)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "servers.json"
    path.write_text(json.dumps(SAMPLE_CONFIG, indent=2) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def state() -> StateStore:
    return StateStore()


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub(
        {
            ("GET", "health"): health_payload(WEATHER_SERVER, FILES_SERVER),
            ("POST", "client/register"): {"registered": True, "activeClients": 1},
            ("POST", "client/unregister"): {"unregistered": True},
            ("GET", "marketplace"): {"items": [{"mcpId": "github.com/acme/weather", "name": "Weather"}]},
        }
    )


@pytest_asyncio.fixture
async def hub(config_file: Path, state: StateStore, fake_hub: FakeHub):
    """A HubClient whose HTTP traffic goes to ``fake_hub``."""
    client = HubClient(unused_port(), config_file, state, command=python_command("import sys; sys.exit(3)"))
    with patch.object(client.http._client, "request", new=AsyncMock(side_effect=fake_hub.handle)):
        yield client
        await client.aclose()


@pytest_asyncio.fixture
async def connected_hub(hub: HubClient):
    """``hub`` after a successful attach to an already running hub."""
    await hub.start()
    assert hub.is_ready()
    yield hub
