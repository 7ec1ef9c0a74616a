"""Cast command-line strings into an argument's declared type.

Everything supplied on the command line arrives as a string; defaults are
stringified before they are merged in. :func:`coerce_arguments` replaces
those strings with typed values in place.
"""

from __future__ import annotations

import json
from typing import Any, assert_never

from omgexec.errors import CoercionError, ValidationError
from omgexec.types import Action, ArgumentType, Event


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ValueError(value)


def _to_int(value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(value)
    return int(value)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(value)
    return float(value)


def _from_json(value: Any, expected: type) -> Any:
    parsed = json.loads(value) if isinstance(value, str) else value
    if not isinstance(parsed, expected):
        raise ValueError(value)
    return parsed


def _to_any(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def coerce_value(name: str, type_: ArgumentType, value: Any) -> Any:
    """Return *value* cast to *type_*, or raise :class:`CoercionError`."""
    try:
        match type_:
            case ArgumentType.STRING:
                return value if isinstance(value, str) else json.dumps(value)
            case ArgumentType.INTEGER:
                return _to_int(value)
            case ArgumentType.FLOAT:
                return _to_float(value)
            case ArgumentType.BOOLEAN:
                return _to_bool(value)
            case ArgumentType.OBJECT:
                return _from_json(value, dict)
            case ArgumentType.LIST:
                return _from_json(value, list)
            case ArgumentType.ANY:
                return _to_any(value)
            case _:
                assert_never(type_)
    except (ValueError, TypeError):
        raise CoercionError(name, type_.value, value) from None


def coerce_arguments(arguments: dict[str, Any], target: Action | Event) -> None:
    """Cast every supplied argument to its declared type, mutating *arguments*."""
    for name in list(arguments):
        argument = target.get_argument(name)
        if argument is None:
            raise ValidationError(f"Unknown argument `{name}` for `{target.name}`")
        arguments[name] = coerce_value(name, argument.type, arguments[name])


def stringify(value: Any) -> str:
    """Render a typed value the way it is written on a command line."""
    return value if isinstance(value, str) else json.dumps(value)
