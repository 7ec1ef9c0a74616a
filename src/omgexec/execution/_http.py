"""Request/response execution against an ephemeral lifecycle container."""

from __future__ import annotations

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
from omgexec.types import Action
from omgexec.validation import check_output


class HttpExecution:
    def __init__(self, invocation: Invocation, action: Action, services: Services) -> None:
        self.invocation = invocation
        self.action = action
        self.services = services
        self.tracker = StageTracker(action.name)

    async def run(self) -> str:
        inv = self.invocation
        http = self.action.http
        assert http is not None

        self.tracker.advance(Stage.VALIDATING)
        prepare_inputs(inv, self.action)

        self.tracker.advance(Stage.PROVISIONING)
        lifecycle = require_lifecycle(inv.microservice)
        record = await provision(
            self.services,
            inv.image,
            internal_ports=[http.port],
            env=inv.environment,
            entrypoint=lifecycle.command,
            command=lifecycle.args,
        )

        try:
            self.tracker.advance(Stage.INVOKING)
            request = build_request(
                http,
                inv.arguments,
                self.action,
                port=record.ports[http.port],
                host=self.services.settings.http.host,
            )
            output = await self.services.http.invoke(request)
            check_output(output, self.action.output_type)
        finally:
            await self.services.containers.stop(record.container_id)
        return output
