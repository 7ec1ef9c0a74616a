"""Error kinds raised while executing an action or event.

Components raise the specific subclass; :class:`omgexec.execution.Executor`
wraps whatever escapes a strategy into a single :class:`ExecutionFailed`
whose message names the action or event.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    COERCION = "coercion"
    PROVISIONING = "provisioning"
    INVOCATION = "invocation"
    OUTPUT_TYPE = "output_type"
    STATE_STORE = "state_store"


class OmgExecError(Exception):
    """Base class for every engine-level failure."""

    kind: ErrorKind = ErrorKind.INVOCATION


# -- Validation -----------------------------------------------------------


class ValidationError(OmgExecError):
    kind = ErrorKind.VALIDATION


class DescriptorError(ValidationError):
    """Raised when a descriptor model is constructed with contradictory fields."""

    def __init__(self, context: str, message: str) -> None:
        self.context = context
        super().__init__(f"{context}: {message}")


def _join(names: Iterable[str]) -> str:
    return ",".join(names)


class MissingArguments(ValidationError):
    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Need to supply required arguments: `{_join(names)}`")


class MissingEnvironmentVariables(ValidationError):
    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Need to supply required environment variables: `{_join(names)}`")


class ConstraintViolation(ValidationError):
    def __init__(self, argument: str, rule: str) -> None:
        self.argument = argument
        self.rule = rule
        super().__init__(f"Argument `{argument}` violates its {rule}")


# -- Coercion -------------------------------------------------------------


class CoercionError(OmgExecError):
    kind = ErrorKind.COERCION

    def __init__(self, name: str, type_name: str, value: object) -> None:
        self.name = name
        self.type_name = type_name
        self.value = value
        super().__init__(f"`{name}` must be of type `{type_name}`, got: {value!r}")


# -- Provisioning ---------------------------------------------------------


class ProvisioningError(OmgExecError):
    kind = ErrorKind.PROVISIONING


class ContainerStartError(ProvisioningError):
    """Raised when the container runtime refuses to start a container."""

    def __init__(self, stderr: str, returncode: int, container_id: str = "") -> None:
        self.stderr = stderr
        self.returncode = returncode
        self.container_id = container_id
        super().__init__(f"Container failed to start (exit {returncode}): {stderr}")


# -- Invocation -----------------------------------------------------------


class InvocationError(OmgExecError):
    kind = ErrorKind.INVOCATION


class HttpStatusError(InvocationError):
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")


class OutputTypeMismatch(OmgExecError):
    kind = ErrorKind.OUTPUT_TYPE

    def __init__(self, expected: str, output: str) -> None:
        self.expected = expected
        self.output = output
        super().__init__(f"Output must be of type `{expected}`, got: {output!r}")


class StateStoreError(OmgExecError):
    """Unreadable state file. Logged and treated as "no record", never raised to callers."""

    kind = ErrorKind.STATE_STORE


# -- Structured failure ---------------------------------------------------


class ExecutionFailed(Exception):
    """The single failure surfaced to callers of the engine."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)
