"""Data models for a microservice descriptor.

The descriptor arrives already schema-validated; ``from_dict`` only maps the
raw vocabulary onto these models and enforces the invariants that span
several fields.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from omgexec.errors import DescriptorError, ValidationError


class ArgumentType(StrEnum):
    STRING = "string"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"
    OBJECT = "object"
    LIST = "list"
    ANY = "any"

    @classmethod
    def parse(cls, raw: str, context: str) -> ArgumentType:
        name = _TYPE_ALIASES.get(raw, raw)
        try:
            return cls(name)
        except ValueError:
            raise DescriptorError(context, f"Unknown type `{raw}`") from None


_TYPE_ALIASES = {
    "integer": "int",
    "number": "float",
    "bool": "boolean",
    "map": "object",
    "uuid": "string",
    "path": "string",
}


class Location(StrEnum):
    QUERY = "query"
    PATH = "path"
    BODY = "body"

    @classmethod
    def parse(cls, raw: str, context: str) -> Location:
        name = "body" if raw == "requestBody" else raw
        try:
            return cls(name)
        except ValueError:
            raise DescriptorError(context, f"Unknown location `{raw}`") from None


class FormatMode(StrEnum):
    TEMPLATE = "template"
    FLAGS = "flags"
    JSON = "json"


HttpMethod = Literal["get", "post", "put", "delete"]
_HTTP_METHODS = ("get", "post", "put", "delete")


@dataclass(frozen=True)
class Range:
    min: float | None = None
    max: float | None = None

    def __contains__(self, value: object) -> bool:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return False
        if self.min is not None and value < self.min:
            return False
        return self.max is None or value <= self.max

    def __str__(self) -> str:
        return f"range [{self.min}, {self.max}]"


@dataclass
class Argument:
    name: str
    type: ArgumentType = ArgumentType.STRING
    location: Location | None = None  # HTTP-style invocation only
    required: bool = False
    default: Any = None
    pattern: str | None = None
    enum: list[Any] | None = None
    range: Range | None = None
    help: str | None = None

    def __post_init__(self) -> None:
        constraints = [self.pattern, self.enum, self.range]
        if sum(c is not None for c in constraints) > 1:
            raise DescriptorError(
                f"Argument with name: `{self.name}`",
                "An Argument can only have a pattern, enum, or range defined",
            )

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> Argument:
        context = f"Argument with name: `{name}`"
        location = raw.get("location") or raw.get("in")
        raw_range = raw.get("range")
        return cls(
            name=name,
            type=ArgumentType.parse(raw.get("type", "string"), context),
            location=Location.parse(location, context) if location else None,
            required=bool(raw.get("required", False)),
            default=raw.get("default"),
            pattern=raw.get("pattern"),
            enum=raw.get("enum"),
            range=Range(raw_range.get("min"), raw_range.get("max")) if raw_range else None,
            help=raw.get("help"),
        )


@dataclass
class EnvironmentVariable:
    name: str
    type: ArgumentType = ArgumentType.STRING
    required: bool = False
    default: Any = None
    pattern: str | None = None
    help: str | None = None

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> EnvironmentVariable:
        return cls(
            name=name,
            type=ArgumentType.parse(
                raw.get("type", "string"), f"Environment variable with name: `{name}`"
            ),
            required=bool(raw.get("required", False)),
            default=raw.get("default"),
            pattern=raw.get("pattern"),
            help=raw.get("help"),
        )


@dataclass
class Http:
    method: HttpMethod
    path: str  # may contain {{argument}} placeholders
    port: int  # port the container listens on

    def __post_init__(self) -> None:
        method = self.method.lower()
        if method not in _HTTP_METHODS:
            raise DescriptorError("http", f"Unsupported method `{self.method}`")
        self.method = method  # type: ignore[assignment]

    @classmethod
    def from_dict(cls, raw: dict[str, Any], port: int | None = None) -> Http:
        resolved = raw.get("port", port)
        if resolved is None:
            raise DescriptorError("http", "A port is required")
        return cls(
            method=raw["method"],
            path=raw.get("path") or raw.get("endpoint") or "/",
            port=int(resolved),
        )


class _HasArguments:
    """Argument lookups shared by :class:`Action` and :class:`Event`."""

    arguments: list[Argument]

    def get_argument(self, name: str) -> Argument | None:
        for argument in self.arguments:
            if argument.name == name:
                return argument
        return None

    @property
    def required_arguments(self) -> list[str]:
        return [a.name for a in self.arguments if a.required]


def _arguments_from_dict(raw: dict[str, Any] | None) -> list[Argument]:
    return [Argument.from_dict(name, entry or {}) for name, entry in (raw or {}).items()]


@dataclass
class Event(_HasArguments):
    name: str
    action: str  # owning action name
    subscribe: Http
    unsubscribe: Http
    arguments: list[Argument] = field(default_factory=list)
    help: str | None = None

    @property
    def port(self) -> int:
        return self.subscribe.port

    @classmethod
    def from_dict(cls, name: str, action: str, raw: dict[str, Any]) -> Event:
        http = raw["http"]
        port = http.get("port")
        return cls(
            name=name,
            action=action,
            subscribe=Http.from_dict(http["subscribe"], port),
            unsubscribe=Http.from_dict(http["unsubscribe"], port),
            arguments=_arguments_from_dict(raw.get("arguments")),
            help=raw.get("help"),
        )


@dataclass
class Format:
    command: list[str]
    mode: FormatMode | None = None  # None: inferred from the command, see resolve_mode

    def resolve_mode(self, has_arguments: bool) -> FormatMode | None:
        if self.mode is not None:
            return self.mode
        if any("{{" in token for token in self.command):
            return FormatMode.TEMPLATE
        if has_arguments:
            return FormatMode.JSON
        return None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Format:
        command = raw["command"]
        tokens = shlex.split(command) if isinstance(command, str) else [str(t) for t in command]
        mode = raw.get("mode")
        return cls(command=tokens, mode=FormatMode(mode) if mode else None)


@dataclass
class Lifecycle:
    command: str
    args: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Lifecycle | None:
        startup = raw.get("startup")
        if not startup:
            return None
        command = startup["command"]
        tokens = shlex.split(command) if isinstance(command, str) else [str(t) for t in command]
        args = startup.get("args") or []
        if isinstance(args, str):
            args = shlex.split(args)
        return cls(command=tokens[0], args=[*tokens[1:], *(str(a) for a in args)])


@dataclass
class Action(_HasArguments):
    name: str
    arguments: list[Argument] = field(default_factory=list)
    format: Format | None = None
    http: Http | None = None
    events: dict[str, Event] = field(default_factory=dict)
    output_type: ArgumentType | None = None
    help: str | None = None

    def __post_init__(self) -> None:
        styles = [self.format is not None, self.http is not None, bool(self.events)]
        if sum(styles) != 1:
            raise DescriptorError(
                f"Action with name: `{self.name}`",
                "Exactly one of format, http or events must be defined",
            )

    def get_event(self, name: str) -> Event:
        try:
            return self.events[name]
        except KeyError:
            raise ValidationError(f"Action `{self.name}` has no event `{name}`") from None

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> Action:
        output = raw.get("output") or {}
        output_type = output.get("type")
        return cls(
            name=name,
            arguments=_arguments_from_dict(raw.get("arguments")),
            format=Format.from_dict(raw["format"]) if raw.get("format") else None,
            http=Http.from_dict(raw["http"]) if raw.get("http") else None,
            events={
                event_name: Event.from_dict(event_name, name, event_raw)
                for event_name, event_raw in (raw.get("events") or {}).items()
            },
            output_type=(
                ArgumentType.parse(output_type, f"Action with name: `{name}`")
                if output_type
                else None
            ),
            help=raw.get("help"),
        )


@dataclass
class Microservice:
    actions: dict[str, Action] = field(default_factory=dict)
    environment: list[EnvironmentVariable] = field(default_factory=list)
    lifecycle: Lifecycle | None = None

    def get_action(self, name: str) -> Action:
        try:
            return self.actions[name]
        except KeyError:
            raise ValidationError(f"Unknown action `{name}`") from None

    @property
    def event_ports(self) -> list[int]:
        """Distinct container ports that any event listens on, in declaration order."""
        ports: list[int] = []
        for action in self.actions.values():
            for event in action.events.values():
                for http in (event.subscribe, event.unsubscribe):
                    if http.port not in ports:
                        ports.append(http.port)
        return ports

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Microservice:
        return cls(
            actions={
                name: Action.from_dict(name, entry)
                for name, entry in (raw.get("actions") or {}).items()
            },
            environment=[
                EnvironmentVariable.from_dict(name, entry or {})
                for name, entry in (raw.get("environment") or {}).items()
            ],
            lifecycle=Lifecycle.from_dict(raw["lifecycle"]) if raw.get("lifecycle") else None,
        )


@dataclass
class ContainerRecord:
    """Persisted long-running container: id plus internal → external port map."""

    container_id: str
    ports: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "container_id": self.container_id,
            "ports": {str(internal): external for internal, external in self.ports.items()},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ContainerRecord:
        return cls(
            container_id=str(raw.get("container_id") or ""),
            ports={int(k): int(v) for k, v in (raw.get("ports") or {}).items()},
        )
