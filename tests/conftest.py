"""Shared test fixtures for omgexec."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from omgexec.config import HttpConfig, ProvisioningConfig, Settings, StateConfig
from omgexec.execution import Services
from omgexec.ports import PortAllocator
from omgexec.state import SubscriptionStateStore
from omgexec.types import Microservice

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Create a Settings object with fast, isolated defaults for testing."""
    defaults: dict[str, Any] = {
        "state": StateConfig(path=tmp_path / "omg.json"),
        "http": HttpConfig(backoff=0.0, timeout=5.0),
        "provisioning": ProvisioningConfig(max_start_attempts=3, timeout=5.0),
    }
    defaults.update(overrides)
    return Settings(**defaults)


def make_containers(container_id: str = "0123456789abcdef0123") -> MagicMock:
    """A ContainerLifecycle stand-in whose async methods are AsyncMocks."""
    containers = MagicMock()
    containers.start = AsyncMock(return_value=container_id)
    containers.exec = AsyncMock(return_value="")
    containers.stop = AsyncMock()
    containers.kill = AsyncMock()
    containers.remove = AsyncMock()
    containers.is_running = AsyncMock(return_value=True)
    return containers


def make_services(
    tmp_path: Path,
    *,
    containers: MagicMock | None = None,
    http_output: str = "",
    ports: list[int] | None = None,
    settings: Settings | None = None,
) -> Services:
    settings = settings or make_settings(tmp_path)
    allocator = MagicMock(spec=PortAllocator)
    if ports is not None:
        allocator.allocate.side_effect = lambda count: ports[:count]
    else:
        allocator.allocate.side_effect = lambda count: [4000 + i for i in range(count)]
    http = MagicMock()
    http.invoke = AsyncMock(return_value=http_output)
    return Services(
        settings=settings,
        containers=containers or make_containers(),
        ports=allocator,
        http=http,
        state=SubscriptionStateStore(settings.state.path),
    )


EVENT_DESCRIPTOR: dict[str, Any] = {
    "actions": {
        "foo": {
            "events": {
                "bar": {
                    "arguments": {
                        "x": {"type": "int", "in": "requestBody", "required": True},
                    },
                    "http": {
                        "port": 5000,
                        "subscribe": {"method": "post", "path": "/sub"},
                        "unsubscribe": {"method": "post", "path": "/unsub"},
                    },
                },
            },
        },
    },
    "lifecycle": {"startup": {"command": "python", "args": ["app.py"]}},
}


def event_microservice() -> Microservice:
    return Microservice.from_dict(EVENT_DESCRIPTOR)


@pytest.fixture
def services(tmp_path: Path) -> Services:
    return make_services(tmp_path)
