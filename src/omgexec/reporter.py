"""Progress reporting seam. The engine only fires text at it."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from omgexec.logger import logger


@runtime_checkable
class ProgressReporter(Protocol):
    def start(self, text: str) -> None: ...

    def succeed(self, text: str) -> None: ...

    def fail(self, text: str) -> None: ...


class LogReporter:
    """Reporter that writes progress lines to the structured log."""

    def start(self, text: str) -> None:
        logger.info(text)

    def succeed(self, text: str) -> None:
        logger.info(text, status="ok")

    def fail(self, text: str) -> None:
        logger.error(text, status="failed")

