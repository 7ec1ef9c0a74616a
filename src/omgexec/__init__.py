"""Execute the actions and events of a containerized microservice."""

from omgexec.errors import ErrorKind, ExecutionFailed
from omgexec.execution import Executor
from omgexec.types import Microservice

__all__ = ["ErrorKind", "ExecutionFailed", "Executor", "Microservice"]
