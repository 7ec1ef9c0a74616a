"""Outbound HTTP calls to a container this process started.

Arguments are distributed over the URL path, the query string and a JSON
body according to their declared location. Calls go through
:class:`RequestRetrier`, which retries a bounded number of times when the
peer resets the connection (typical while the container is still booting).
"""

from __future__ import annotations

import asyncio
import errno
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote, urlencode

import aiohttp

from omgexec.coercion import stringify
from omgexec.errors import HttpStatusError, InvocationError
from omgexec.logger import logger
from omgexec.types import Action, Event, Http, Location
from omgexec.validation import check_placeholders_filled

T = TypeVar("T")


@dataclass
class HttpRequest:
    method: str
    url: str
    body: dict[str, Any] | None = None


def _default_location(method: str) -> Location:
    return Location.BODY if method in ("post", "put") else Location.QUERY


def build_request(
    http: Http,
    arguments: Mapping[str, Any],
    target: Action | Event,
    *,
    port: int,
    host: str = "localhost",
) -> HttpRequest:
    """Build the request for *http* against ``http://{host}:{port}``."""
    path = http.path
    query: dict[str, str] = {}
    body: dict[str, Any] = {}
    in_path: list[str] = []
    for argument in target.arguments:
        if argument.name not in arguments:
            continue
        value = arguments[argument.name]
        match argument.location or _default_location(http.method):
            case Location.PATH:
                path = path.replace(f"{{{{{argument.name}}}}}", quote(stringify(value), safe=""))
                in_path.append(argument.name)
            case Location.QUERY:
                query[argument.name] = stringify(value)
            case Location.BODY:
                body[argument.name] = value
    check_placeholders_filled(http.path, in_path, f"path `{http.path}`")

    url = f"http://{host}:{port}{path}"
    if query:
        url = f"{url}?{urlencode(query, quote_via=quote)}"
    return HttpRequest(method=http.method, url=url, body=body or None)


def is_connection_reset(exc: BaseException) -> bool:
    if isinstance(exc, ConnectionResetError | aiohttp.ServerDisconnectedError):
        return True
    return isinstance(exc, OSError) and exc.errno == errno.ECONNRESET


class RequestRetrier:
    """Retry a call while the peer keeps resetting the connection, up to a bound."""

    def __init__(
        self,
        max_attempts: int = 10,
        backoff: float = 0.5,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self._sleep = sleep
        self.attempts = 0

    async def call(self, send: Callable[[], Awaitable[T]]) -> T:
        """Await ``send()``; reset-class failures are retried, all others propagate."""
        self.attempts = 0
        while True:
            self.attempts += 1
            try:
                return await send()
            except (aiohttp.ClientError, OSError) as exc:
                if not is_connection_reset(exc):
                    raise
                if self.attempts >= self.max_attempts:
                    raise InvocationError(
                        f"Connection reset on all {self.max_attempts} attempts"
                    ) from exc
                logger.info(
                    "Connection reset, retrying",
                    attempt=self.attempts,
                    max_attempts=self.max_attempts,
                )
                await self._sleep(self.backoff * self.attempts)


async def send_request(session: aiohttp.ClientSession, request: HttpRequest) -> str:
    """Issue *request* once and return the response body.

    Raises:
        HttpStatusError: the response status is not 2xx.
    """
    async with session.request(request.method.upper(), request.url, json=request.body) as resp:
        text = await resp.text()
        if not 200 <= resp.status < 300:
            raise HttpStatusError(resp.status, text)
        return text


class HttpInvoker:
    """Send one request per call through a fresh session and a retrier."""

    def __init__(self, retrier: RequestRetrier, *, timeout: float = 30.0) -> None:
        self.retrier = retrier
        self.timeout = timeout

    async def invoke(self, request: HttpRequest) -> str:
        logger.debug("HTTP request", method=request.method, url=request.url)
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as session:
                return await self.retrier.call(lambda: send_request(session, request))
        except TimeoutError as exc:
            raise InvocationError(
                f"{request.method.upper()} {request.url} timed out after {self.timeout}s"
            ) from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise InvocationError(f"{request.method.upper()} {request.url} failed: {exc}") from exc
