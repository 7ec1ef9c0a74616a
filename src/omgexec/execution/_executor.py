"""Main entry point: pick the strategy for an action and run it.

Every failure leaving a strategy is turned into one :class:`ExecutionFailed`
whose message names the action or event; the reporter is told about it here.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from omgexec.config import Settings, get_settings
from omgexec.containers import ContainerLifecycle, short_id
from omgexec.errors import ExecutionFailed, OmgExecError, ValidationError
from omgexec.execution._common import ExecutionStrategy, Invocation, Services, Stage
from omgexec.execution._event import EventExecution
from omgexec.execution._format import FormatExecution
from omgexec.execution._http import HttpExecution
from omgexec.http import HttpInvoker, RequestRetrier
from omgexec.logger import logger
from omgexec.ports import PortAllocator
from omgexec.reporter import LogReporter, ProgressReporter
from omgexec.state import SubscriptionStateStore
from omgexec.types import Action, Microservice


def default_services(settings: Settings) -> Services:
    return Services(
        settings=settings,
        containers=ContainerLifecycle(
            settings.runtime.cli, timeout=settings.runtime.command_timeout
        ),
        ports=PortAllocator(
            settings.ports.low, settings.ports.high, max_probes=settings.ports.max_probes
        ),
        http=HttpInvoker(
            RequestRetrier(settings.http.max_attempts, settings.http.backoff),
            timeout=settings.http.timeout,
        ),
        state=SubscriptionStateStore(settings.state.path),
    )


def select_strategy(
    invocation: Invocation, action: Action, services: Services
) -> ExecutionStrategy:
    """Return the strategy for an action invoked directly (format or http)."""
    if action.format is not None:
        return FormatExecution(invocation, action, services)
    if action.http is not None:
        return HttpExecution(invocation, action, services)
    raise ValidationError(
        f"Action `{action.name}` is driven by events; subscribe to one of: "
        f"{', '.join(action.events)}"
    )


class Executor:
    """Runs actions and events of one microservice image."""

    def __init__(
        self,
        microservice: Microservice,
        image: str,
        *,
        services: Services | None = None,
        reporter: ProgressReporter | None = None,
        cwd: str | None = None,
    ) -> None:
        self.microservice = microservice
        self.image = image
        self.services = services or default_services(get_settings())
        self.reporter = reporter or LogReporter()
        self.cwd = cwd or str(Path.cwd().resolve())
        self.last_strategy: ExecutionStrategy | None = None

    def _invocation(
        self, arguments: dict[str, Any] | None, environment: dict[str, str] | None
    ) -> Invocation:
        return Invocation(
            image=self.image,
            microservice=self.microservice,
            arguments=dict(arguments or {}),
            environment=dict(environment or {}),
        )

    async def run_action(
        self,
        action_name: str,
        arguments: dict[str, Any] | None = None,
        environment: dict[str, str] | None = None,
    ) -> str:
        invocation = self._invocation(arguments, environment)

        def build() -> ExecutionStrategy:
            action = self.microservice.get_action(action_name)
            return select_strategy(invocation, action, self.services)

        return await self._execute(
            build,
            start=f"Running action: `{action_name}`",
            success=lambda out: f"Ran action: `{action_name}` with output: {out.strip()}",
            failure=f"Failed action: `{action_name}`.",
        )

    async def subscribe(
        self,
        action_name: str,
        event_name: str,
        arguments: dict[str, Any] | None = None,
        environment: dict[str, str] | None = None,
    ) -> str:
        return await self._event(action_name, event_name, arguments, environment, subscribe=True)

    async def unsubscribe(
        self,
        action_name: str,
        event_name: str,
        arguments: dict[str, Any] | None = None,
        environment: dict[str, str] | None = None,
    ) -> str:
        return await self._event(action_name, event_name, arguments, environment, subscribe=False)

    async def _event(
        self,
        action_name: str,
        event_name: str,
        arguments: dict[str, Any] | None,
        environment: dict[str, str] | None,
        *,
        subscribe: bool,
    ) -> str:
        invocation = self._invocation(arguments, environment)

        def build() -> ExecutionStrategy:
            event = self.microservice.get_action(action_name).get_event(event_name)
            return EventExecution(
                invocation, event, self.services, cwd=self.cwd, subscribe=subscribe
            )

        if subscribe:
            start, done, failure = "Subscribing to", "Subscribed to", "Failed subscribing to"
        else:
            start, done = "Unsubscribing from", "Unsubscribed from"
            failure = "Failed unsubscribing from"
        return await self._execute(
            build,
            start=f"{start} event: `{event_name}`",
            success=lambda _out: f"{done} event: `{event_name}`",
            failure=f"{failure} event: `{event_name}`.",
        )

    async def stop_event_container(self) -> bool:
        """Stop the event container recorded for this directory and forget it.

        Returns False when nothing was recorded.
        """
        state = self.services.state
        record = state.get(self.cwd)
        if record is None:
            return False
        sid = short_id(record.container_id)
        self.reporter.start(f"Stopping Docker container: {sid}")
        try:
            await self.services.containers.stop(record.container_id)
        except OmgExecError as exc:
            message = f"Failed stopping Docker container: {sid}. {exc}"
            self.reporter.fail(message)
            raise ExecutionFailed(exc.kind, message) from exc
        state.delete(self.cwd)
        self.reporter.succeed(f"Stopped Docker container: {sid}")
        return True

    async def _execute(
        self,
        build: Callable[[], ExecutionStrategy],
        *,
        start: str,
        success: Callable[[str], str],
        failure: str,
    ) -> str:
        self.reporter.start(start)
        strategy: ExecutionStrategy | None = None
        try:
            strategy = build()
            self.last_strategy = strategy
            output = await strategy.run()
        except OmgExecError as exc:
            if strategy is not None:
                strategy.tracker.advance(Stage.FAILED)
            message = f"{failure} {exc}"
            logger.debug("Execution failed", kind=exc.kind.value, err=str(exc))
            self.reporter.fail(message)
            raise ExecutionFailed(exc.kind, message) from exc
        strategy.tracker.advance(Stage.COMPLETED)
        self.reporter.succeed(success(output))
        return output
