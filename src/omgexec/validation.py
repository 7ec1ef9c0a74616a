"""Required/default/constraint checks for arguments and environment variables."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Collection, Mapping
from typing import Any

from omgexec.coercion import coerce_value, stringify
from omgexec.errors import (
    CoercionError,
    ConstraintViolation,
    MissingArguments,
    MissingEnvironmentVariables,
    OutputTypeMismatch,
    ValidationError,
)
from omgexec.types import Action, ArgumentType, Event, Microservice


def _is_absent(mapping: Mapping[str, Any], name: str) -> bool:
    return mapping.get(name) in (None, "")


def apply_default_arguments(arguments: dict[str, Any], target: Action | Event) -> None:
    """Fill absent arguments with their declared default, in string form.

    Object and list defaults are JSON-encoded so that coercion restores the
    typed value.
    """
    for argument in target.arguments:
        if not _is_absent(arguments, argument.name) or argument.default is None:
            continue
        default = argument.default
        if isinstance(default, dict | list):
            arguments[argument.name] = json.dumps(default)
        else:
            arguments[argument.name] = str(default)


def resolve_environment(
    environment: dict[str, str],
    microservice: Microservice,
    os_environ: Mapping[str, str] | None = None,
) -> None:
    """Resolve every declared environment variable in place.

    An explicit value wins; otherwise a same-named variable of the host
    process; otherwise the declared default.
    """
    host = os.environ if os_environ is None else os_environ
    for variable in microservice.environment:
        if not _is_absent(environment, variable.name):
            continue
        if host.get(variable.name):
            environment[variable.name] = host[variable.name]
        elif variable.default is not None:
            environment[variable.name] = stringify(variable.default)


_PLACEHOLDER = re.compile(r"\{\{([\w.-]+)\}\}")


def check_placeholders_filled(template: str, filled: Collection[str], context: str) -> None:
    """Raise if *template* has a ``{{name}}`` placeholder whose name is not in *filled*."""
    unfilled = [name for name in _PLACEHOLDER.findall(template) if name not in filled]
    if unfilled:
        raise ValidationError(f"No value for placeholders `{','.join(unfilled)}` in {context}")


def check_required_arguments(arguments: Mapping[str, Any], target: Action | Event) -> None:
    missing = [name for name in target.required_arguments if _is_absent(arguments, name)]
    if missing:
        raise MissingArguments(missing)


def check_constraints(arguments: Mapping[str, Any], target: Action | Event) -> None:
    """Check pattern, enum and range constraints of every supplied argument."""
    for name, value in arguments.items():
        argument = target.get_argument(name)
        if argument is None:
            raise ValidationError(f"Unknown argument `{name}` for `{target.name}`")
        if argument.pattern is not None and not re.search(argument.pattern, stringify(value)):
            raise ConstraintViolation(name, f"pattern `{argument.pattern}`")
        if argument.enum is not None and value not in argument.enum:
            raise ConstraintViolation(name, f"enum {argument.enum}")
        if argument.range is not None and value not in argument.range:
            raise ConstraintViolation(name, str(argument.range))


def check_environment(environment: Mapping[str, Any], microservice: Microservice) -> None:
    missing = [
        v.name for v in microservice.environment if v.required and _is_absent(environment, v.name)
    ]
    if missing:
        raise MissingEnvironmentVariables(missing)

    for variable in microservice.environment:
        if _is_absent(environment, variable.name):
            continue
        value = environment[variable.name]
        coerce_value(variable.name, variable.type, value)
        if variable.pattern is not None and not re.search(variable.pattern, stringify(value)):
            raise ConstraintViolation(variable.name, f"pattern `{variable.pattern}`")


def check_output(output: str, output_type: ArgumentType | None) -> Any:
    """Return *output* cast to the declared output type.

    Raises:
        OutputTypeMismatch: the output does not parse as *output_type*.
    """
    if output_type is None:
        return output
    try:
        return coerce_value("output", output_type, output.strip())
    except CoercionError:
        raise OutputTypeMismatch(output_type.value, output) from None
