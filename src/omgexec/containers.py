"""Container lifecycle: async wrappers around the container runtime CLI.

All public methods are async so they don't block the event loop.
The underlying subprocess calls run in a thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import subprocess
from collections.abc import Mapping, Sequence

from omgexec.errors import ContainerStartError, InvocationError, ProvisioningError
from omgexec.logger import logger

SHORT_ID_LENGTH = 12

_GONE_MARKERS = ("No such container", "is not running")
_DONE = {"stop": "Stopped container", "kill": "Killed container"}


def short_id(container_id: str) -> str:
    """Canonical short form of a container id, used for display and stop/kill."""
    return container_id.strip()[:SHORT_ID_LENGTH]


def build_run_args(
    image: str,
    *,
    env: Mapping[str, str] | None = None,
    ports: Mapping[int, int] | None = None,
    entrypoint: str | None = None,
    command: Sequence[str] = (),
    tty: bool = False,
) -> list[str]:
    """Build the ``run`` argument vector.

    *ports* maps container (internal) port to host (external) port.
    """
    args = ["run", "-td" if tty else "-d"]
    for internal, external in (ports or {}).items():
        args += ["-p", f"{external}:{internal}"]
    for key, value in (env or {}).items():
        args += ["-e", f"{key}={value}"]
    if entrypoint:
        args += ["--entrypoint", entrypoint]
    args.append(image)
    args += list(command)
    return args


class ContainerLifecycle:
    """Start, exec into, stop and kill containers through the runtime CLI."""

    def __init__(self, cli: str = "docker", *, timeout: float = 60.0) -> None:
        self.cli = cli
        self.timeout = timeout

    def _run_sync(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Run a runtime CLI command (blocking, used via to_thread)."""
        return subprocess.run(
            [self.cli, *args],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    async def run(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Run a runtime CLI command without blocking the event loop.

        Raises:
            ProvisioningError: the runtime CLI is not installed.
        """
        try:
            return await asyncio.to_thread(self._run_sync, *args)
        except FileNotFoundError as exc:
            raise ProvisioningError(f"Container runtime `{self.cli}` not found") from exc

    async def start(
        self,
        image: str,
        *,
        env: Mapping[str, str] | None = None,
        ports: Mapping[int, int] | None = None,
        entrypoint: str | None = None,
        command: Sequence[str] = (),
        tty: bool = False,
    ) -> str:
        """Start a detached container and return its full id.

        Raises:
            ContainerStartError: the runtime exited non-zero. A container the
                runtime created before failing (e.g. a port bind error) is
                removed first.
        """
        args = build_run_args(
            image, env=env, ports=ports, entrypoint=entrypoint, command=command, tty=tty
        )
        try:
            result = await self.run(*args)
        except subprocess.TimeoutExpired as exc:
            raise ProvisioningError(f"`{self.cli} run` timed out after {self.timeout}s") from exc

        container_id = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        if result.returncode != 0:
            if container_id:
                await self.remove(container_id)
            raise ContainerStartError(result.stderr.strip(), result.returncode, container_id)

        logger.info(
            "Started container",
            container=short_id(container_id),
            image=image,
            ports=dict(ports or {}),
        )
        return container_id

    async def exec(self, container_id: str, command: Sequence[str]) -> str:
        """Run *command* inside a running container and return its stdout.

        Raises:
            InvocationError: the command exited non-zero; carries its stderr.
        """
        try:
            result = await self.run("exec", container_id, *command)
        except subprocess.TimeoutExpired as exc:
            raise InvocationError(f"`{self.cli} exec` timed out after {self.timeout}s") from exc
        if result.returncode != 0:
            raise InvocationError(result.stderr.strip() or f"exit code {result.returncode}")
        return result.stdout

    async def stop(self, container_id: str) -> None:
        """Stop a container. Idempotent: an already-stopped or absent id is fine.

        A missing runtime CLI still raises :class:`ProvisioningError`.
        """
        await self._signal("stop", container_id)

    async def kill(self, container_id: str) -> None:
        """Kill a container. Idempotent like :meth:`stop`."""
        await self._signal("kill", container_id)

    async def remove(self, container_id: str) -> None:
        """Force-remove a container (idempotent, no error if absent)."""
        try:
            await self.run("rm", "-f", short_id(container_id))
        except subprocess.TimeoutExpired:
            logger.warning("Timed out removing container", container=short_id(container_id))

    async def is_running(self, container_id: str) -> bool:
        try:
            result = await self.run("inspect", "-f", "{{.State.Running}}", container_id)
        except subprocess.TimeoutExpired as exc:
            raise ProvisioningError(f"`{self.cli} inspect` timed out") from exc
        return result.stdout.strip() == "true"

    async def _signal(self, verb: str, container_id: str) -> None:
        sid = short_id(container_id)
        try:
            result = await self.run(verb, sid)
        except subprocess.TimeoutExpired:
            logger.warning(f"Timed out trying to {verb} container", container=sid)
            return
        if result.returncode == 0:
            logger.info(_DONE[verb], container=sid)
        elif any(marker in result.stderr for marker in _GONE_MARKERS):
            logger.debug("Container already gone", container=sid, verb=verb)
        else:
            logger.warning(
                f"Failed to {verb} container",
                container=sid,
                err=result.stderr.strip(),
            )
