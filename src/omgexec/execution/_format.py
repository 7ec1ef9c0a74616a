"""One-shot in-container command execution."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from omgexec.coercion import stringify
from omgexec.execution._common import (
    Invocation,
    Services,
    Stage,
    StageTracker,
    prepare_inputs,
    provision,
)
from omgexec.types import Action, FormatMode
from omgexec.validation import check_output, check_placeholders_filled


def build_command(action: Action, arguments: Mapping[str, Any]) -> list[str]:
    """Expand the action's format into the argument vector run inside the container."""
    assert action.format is not None
    tokens = list(action.format.command)
    supplied = [a for a in action.arguments if a.name in arguments]

    match action.format.resolve_mode(bool(action.arguments)):
        case FormatMode.TEMPLATE:
            filled = {a.name for a in supplied}
            for token in tokens:
                check_placeholders_filled(token, filled, f"command of `{action.name}`")
            for argument in supplied:
                placeholder = f"{{{{{argument.name}}}}}"
                value = stringify(arguments[argument.name])
                tokens = [token.replace(placeholder, value) for token in tokens]
        case FormatMode.FLAGS:
            for argument in supplied:
                tokens += [f"--{argument.name}", stringify(arguments[argument.name])]
        case FormatMode.JSON:
            tokens.append(json.dumps({a.name: arguments[a.name] for a in supplied}))
        case None:
            pass
    return tokens


class FormatExecution:
    """Start a throwaway container, exec the formatted command, kill the container."""

    def __init__(self, invocation: Invocation, action: Action, services: Services) -> None:
        self.invocation = invocation
        self.action = action
        self.services = services
        self.tracker = StageTracker(action.name)

    async def run(self) -> str:
        inv = self.invocation
        self.tracker.advance(Stage.VALIDATING)
        prepare_inputs(inv, self.action)

        self.tracker.advance(Stage.PROVISIONING)
        lifecycle = inv.microservice.lifecycle
        if lifecycle is not None:
            command = [lifecycle.command, *lifecycle.args]
        else:
            command = list(self.services.settings.provisioning.keepalive_command)
        record = await provision(
            self.services, inv.image, env=inv.environment, command=command, tty=True
        )

        try:
            self.tracker.advance(Stage.INVOKING)
            output = await self.services.containers.exec(
                record.container_id, build_command(self.action, inv.arguments)
            )
            check_output(output, self.action.output_type)
        finally:
            await self.services.containers.kill(record.container_id)
        return output
