"""Execution engine: turns a validated action into a container and an invocation.

This package is split into focused submodules:
  _common    inputs, collaborators, stages, input preparation, provisioning
  _format    one-shot command exec inside a throwaway container
  _http      request/response against an ephemeral lifecycle container
  _event     subscribe/unsubscribe against a recorded lifecycle container
  _executor  strategy selection and the structured failure boundary
"""

from omgexec.execution._common import (
    ExecutionStrategy,
    Invocation,
    Services,
    Stage,
    StageTracker,
    prepare_inputs,
    provision,
)
from omgexec.execution._event import EventExecution, rewrite_callback
from omgexec.execution._executor import Executor, default_services, select_strategy
from omgexec.execution._format import FormatExecution, build_command
from omgexec.execution._http import HttpExecution

__all__ = [
    "EventExecution",
    "ExecutionStrategy",
    "Executor",
    "FormatExecution",
    "HttpExecution",
    "Invocation",
    "Services",
    "Stage",
    "StageTracker",
    "build_command",
    "default_services",
    "prepare_inputs",
    "provision",
    "rewrite_callback",
    "select_strategy",
]
