"""Subscribe/unsubscribe against a lifecycle container shared across runs.

The container and its port map are recorded per working directory, so
later invocations from the same directory talk to the same container.
Nothing here stops that container; see ``Executor.stop_event_container``.
"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from omgexec.containers import short_id
from omgexec.errors import InvocationError
from omgexec.execution._common import (
    Invocation,
    Services,
    Stage,
    StageTracker,
    prepare_inputs,
    provision,
    require_lifecycle,
)
from omgexec.http import build_request
from omgexec.logger import logger
from omgexec.types import ContainerRecord, Event

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})


def rewrite_callback(endpoint: str, container_host: str) -> str:
    """Point a loopback callback URL at the address containers use to reach the host."""
    parts = urlsplit(endpoint)
    if parts.hostname not in _LOOPBACK_HOSTS:
        return endpoint
    netloc = container_host if parts.port is None else f"{container_host}:{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


class EventExecution:
    def __init__(
        self,
        invocation: Invocation,
        event: Event,
        services: Services,
        *,
        cwd: str,
        subscribe: bool = True,
    ) -> None:
        self.invocation = invocation
        self.event = event
        self.services = services
        self.cwd = cwd
        self.subscribe = subscribe
        self.tracker = StageTracker(event.name)

    async def run(self) -> str:
        inv = self.invocation
        settings = self.services.settings

        self.tracker.advance(Stage.VALIDATING)
        prepare_inputs(inv, self.event)
        callback = settings.events.callback_argument
        if isinstance(inv.arguments.get(callback), str):
            inv.arguments[callback] = rewrite_callback(
                inv.arguments[callback], settings.events.container_host
            )

        self.tracker.advance(Stage.PROVISIONING)
        record = await self._ensure_container()

        self.tracker.advance(Stage.INVOKING)
        http = self.event.subscribe if self.subscribe else self.event.unsubscribe
        external = record.ports.get(http.port)
        if external is None:
            raise InvocationError(
                f"Container {short_id(record.container_id)} has no mapping for port {http.port}"
            )
        request = build_request(
            http, inv.arguments, self.event, port=external, host=settings.http.host
        )
        return await self.services.http.invoke(request)

    async def _ensure_container(self) -> ContainerRecord:
        state = self.services.state
        record = state.get(self.cwd)
        if record is not None:
            if record.container_id and await self.services.containers.is_running(
                record.container_id
            ):
                logger.info(
                    "Reusing event container",
                    container=short_id(record.container_id),
                    cwd=self.cwd,
                )
                return record
            logger.warning(
                "Recorded event container is not running",
                container=short_id(record.container_id),
                cwd=self.cwd,
            )
            state.delete(self.cwd)

        if not self.subscribe:
            raise InvocationError(f"No running event container for {self.cwd}")

        inv = self.invocation
        lifecycle = require_lifecycle(inv.microservice)
        record = await provision(
            self.services,
            inv.image,
            internal_ports=inv.microservice.event_ports,
            env=inv.environment,
            entrypoint=lifecycle.command,
            command=lifecycle.args,
        )
        state.write(self.cwd, record)
        return record
