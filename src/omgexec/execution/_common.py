"""Pieces every execution strategy composes: inputs, collaborators, stages,
input preparation and container provisioning.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from omgexec.coercion import coerce_arguments
from omgexec.config import Settings
from omgexec.containers import ContainerLifecycle, short_id
from omgexec.errors import ContainerStartError, ProvisioningError
from omgexec.http import HttpInvoker
from omgexec.logger import logger
from omgexec.ports import PortAllocator
from omgexec.state import SubscriptionStateStore
from omgexec.types import Action, ContainerRecord, Event, Lifecycle, Microservice
from omgexec.validation import (
    apply_default_arguments,
    check_constraints,
    check_environment,
    check_required_arguments,
    resolve_environment,
)

# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class Stage(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    PROVISIONING = "provisioning"
    INVOKING = "invoking"
    COMPLETED = "completed"
    FAILED = "failed"


class StageTracker:
    def __init__(self, name: str) -> None:
        self.name = name
        self.stage = Stage.IDLE
        self.history: list[Stage] = [Stage.IDLE]

    def advance(self, stage: Stage) -> None:
        logger.debug("Execution stage", target=self.name, stage=stage.value)
        self.stage = stage
        self.history.append(stage)


class ExecutionStrategy(Protocol):
    tracker: StageTracker

    async def run(self) -> str: ...


# ---------------------------------------------------------------------------
# Inputs and collaborators
# ---------------------------------------------------------------------------


@dataclass
class Invocation:
    """Caller-supplied inputs for one run. The maps are mutated while preparing."""

    image: str
    microservice: Microservice
    arguments: dict[str, Any] = field(default_factory=dict)
    environment: dict[str, str] = field(default_factory=dict)


@dataclass
class Services:
    settings: Settings
    containers: ContainerLifecycle
    ports: PortAllocator
    http: HttpInvoker
    state: SubscriptionStateStore


def prepare_inputs(invocation: Invocation, target: Action | Event) -> None:
    """Apply defaults, then check and coerce arguments and environment variables."""
    apply_default_arguments(invocation.arguments, target)
    resolve_environment(invocation.environment, invocation.microservice)
    check_required_arguments(invocation.arguments, target)
    check_environment(invocation.environment, invocation.microservice)
    coerce_arguments(invocation.arguments, target)
    check_constraints(invocation.arguments, target)


def require_lifecycle(microservice: Microservice) -> Lifecycle:
    if microservice.lifecycle is None:
        raise ProvisioningError("A lifecycle startup command is required to start the service")
    return microservice.lifecycle


async def _discard_late_start(services: Services, start: asyncio.Future[str]) -> None:
    """Wait out a start abandoned at the deadline and remove what it created."""
    try:
        container_id = await start
    except ProvisioningError:
        return
    logger.warning(
        "Removing container started after the deadline", container=short_id(container_id)
    )
    await services.containers.remove(container_id)


async def provision(
    services: Services,
    image: str,
    *,
    internal_ports: Sequence[int] = (),
    env: dict[str, str] | None = None,
    entrypoint: str | None = None,
    command: Sequence[str] = (),
    tty: bool = False,
) -> ContainerRecord:
    """Start a container, retrying with freshly allocated host ports.

    A start failure (most often a port grabbed between probing and binding)
    is retried up to ``provisioning.max_start_attempts`` times; the whole loop
    runs under ``provisioning.timeout``. A runtime call still in flight at the
    deadline is allowed to finish and its container is removed.
    """
    cfg = services.settings.provisioning
    loop = asyncio.get_running_loop()
    deadline = loop.time() + cfg.timeout
    last_error: ContainerStartError | None = None
    for attempt in range(1, cfg.max_start_attempts + 1):
        external = services.ports.allocate(len(internal_ports))
        mapping = dict(zip(internal_ports, external, strict=True))
        start = asyncio.ensure_future(
            services.containers.start(
                image,
                env=env,
                ports=mapping,
                entrypoint=entrypoint,
                command=command,
                tty=tty,
            )
        )
        try:
            container_id = await asyncio.wait_for(
                asyncio.shield(start), max(0.0, deadline - loop.time())
            )
        except TimeoutError as exc:
            await _discard_late_start(services, start)
            raise ProvisioningError(f"Provisioning timed out after {cfg.timeout}s") from exc
        except ContainerStartError as exc:
            last_error = exc
            logger.warning(
                "Container start failed",
                attempt=attempt,
                max_attempts=cfg.max_start_attempts,
                err=exc.stderr,
            )
            continue
        return ContainerRecord(container_id=container_id, ports=mapping)

    assert last_error is not None
    raise ProvisioningError(
        f"Container failed to start after {cfg.max_start_attempts} attempts: {last_error.stderr}"
    ) from last_error
