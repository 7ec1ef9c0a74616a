"""Tests for HTTP request construction, reset retries and the aiohttp invoker."""

from __future__ import annotations

import asyncio
import errno
import json

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from omgexec.errors import HttpStatusError, InvocationError, ValidationError
from omgexec.http import (
    HttpInvoker,
    HttpRequest,
    RequestRetrier,
    build_request,
    is_connection_reset,
)
from omgexec.types import Action, Argument, ArgumentType, Http, Location


def _action(http: Http, *arguments: Argument) -> Action:
    return Action(name="act", http=http, arguments=list(arguments))


class TestBuildRequest:
    def test_path_argument(self):
        http = Http(method="post", path="/sub/{{x}}", port=5000)
        argument = Argument(name="x", type=ArgumentType.INTEGER, location=Location.PATH)
        action = _action(http, argument)
        request = build_request(http, {"x": 1}, action, port=4444)
        assert request.url == "http://localhost:4444/sub/1"
        assert request.body is None

    def test_body_argument(self):
        http = Http(method="post", path="/sub", port=5000)
        argument = Argument(name="x", type=ArgumentType.INTEGER, location=Location.BODY)
        action = _action(http, argument)
        request = build_request(http, {"x": 1}, action, port=4444)
        assert request.url == "http://localhost:4444/sub"
        assert request.body == {"x": 1}

    def test_query_argument(self):
        http = Http(method="get", path="/search", port=5000)
        action = _action(http, Argument(name="q", location=Location.QUERY))
        request = build_request(http, {"q": "a b&c"}, action, port=4444)
        assert request.url == "http://localhost:4444/search?q=a%20b%26c"
        assert request.body is None

    def test_mixed_locations(self):
        http = Http(method="put", path="/items/{{id}}", port=5000)
        action = _action(
            http,
            Argument(name="id", location=Location.PATH),
            Argument(name="dry", type=ArgumentType.BOOLEAN, location=Location.QUERY),
            Argument(name="item", type=ArgumentType.OBJECT, location=Location.BODY),
        )
        request = build_request(
            http, {"id": "a/b", "dry": True, "item": {"k": 1}}, action, port=9, host="127.0.0.1"
        )
        assert request.method == "put"
        assert request.url == "http://127.0.0.1:9/items/a%2Fb?dry=true"
        assert request.body == {"item": {"k": 1}}

    def test_default_location_follows_method(self):
        get = Http(method="get", path="/", port=1)
        post = Http(method="post", path="/", port=1)
        arg = Argument(name="n", type=ArgumentType.INTEGER)
        assert build_request(get, {"n": 2}, _action(get, arg), port=1).url.endswith("/?n=2")
        assert build_request(post, {"n": 2}, _action(post, arg), port=1).body == {"n": 2}

    def test_absent_path_argument_is_rejected(self):
        http = Http(method="get", path="/x/{{id}}/{{rev}}", port=1)
        action = _action(
            http,
            Argument(name="id", location=Location.PATH),
            Argument(name="rev", location=Location.PATH),
        )
        with pytest.raises(ValidationError, match="No value for placeholders `rev`"):
            build_request(http, {"id": "a"}, action, port=1)

    def test_value_that_looks_like_a_placeholder(self):
        http = Http(method="get", path="/x/{{id}}", port=1)
        action = _action(http, Argument(name="id", location=Location.PATH))
        request = build_request(http, {"id": "{{id}}"}, action, port=1)
        assert request.url == "http://localhost:1/x/%7B%7Bid%7D%7D"

    def test_absent_optional_arguments_are_skipped(self):
        http = Http(method="get", path="/x", port=1)
        action = _action(http, Argument(name="q", location=Location.QUERY))
        assert build_request(http, {}, action, port=1).url == "http://localhost:1/x"


class TestIsConnectionReset:
    def test_reset_classes(self):
        assert is_connection_reset(ConnectionResetError())
        assert is_connection_reset(aiohttp.ServerDisconnectedError())
        assert is_connection_reset(OSError(errno.ECONNRESET, "reset"))

    def test_other_errors(self):
        assert not is_connection_reset(ConnectionRefusedError())
        assert not is_connection_reset(ValueError())


class TestRequestRetrier:
    async def _no_sleep(self, _delay: float) -> None:
        return None

    async def test_succeeds_after_two_resets(self):
        calls = 0

        async def send() -> str:
            nonlocal calls
            calls += 1
            if calls <= 2:
                raise ConnectionResetError("reset by peer")
            return "ok"

        retrier = RequestRetrier(max_attempts=5, sleep=self._no_sleep)
        assert await retrier.call(send) == "ok"
        assert calls == 3
        assert retrier.attempts == 3

    async def test_bounded(self):
        calls = 0

        async def send() -> str:
            nonlocal calls
            calls += 1
            raise aiohttp.ServerDisconnectedError()

        retrier = RequestRetrier(max_attempts=4, sleep=self._no_sleep)
        with pytest.raises(InvocationError, match="all 4 attempts"):
            await retrier.call(send)
        assert calls == 4

    async def test_other_errors_are_not_retried(self):
        calls = 0

        async def send() -> str:
            nonlocal calls
            calls += 1
            raise ConnectionRefusedError()

        retrier = RequestRetrier(max_attempts=4, sleep=self._no_sleep)
        with pytest.raises(ConnectionRefusedError):
            await retrier.call(send)
        assert calls == 1

    async def test_linear_backoff(self):
        delays: list[float] = []

        async def sleep(delay: float) -> None:
            delays.append(delay)

        async def send() -> str:
            raise ConnectionResetError()

        retrier = RequestRetrier(max_attempts=3, backoff=0.5, sleep=sleep)
        with pytest.raises(InvocationError):
            await retrier.call(send)
        assert delays == [0.5, 1.0]


class TestHttpInvoker:
    async def _server(self, handler) -> TestServer:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", handler)
        server = TestServer(app)
        await server.start_server()
        return server

    async def test_posts_json_body(self):
        seen: dict = {}

        async def handler(request: web.Request) -> web.Response:
            seen["method"] = request.method
            seen["path"] = request.path_qs
            seen["body"] = await request.json()
            return web.json_response({"subscribed": True})

        server = await self._server(handler)
        try:
            invoker = HttpInvoker(RequestRetrier(max_attempts=1))
            body = await invoker.invoke(
                HttpRequest("post", f"http://{server.host}:{server.port}/sub?a=1", {"x": 1})
            )
        finally:
            await server.close()
        assert json.loads(body) == {"subscribed": True}
        assert seen == {"method": "POST", "path": "/sub?a=1", "body": {"x": 1}}

    async def test_non_2xx_is_an_invocation_error(self):
        async def handler(request: web.Request) -> web.Response:
            return web.Response(status=422, text="bad x")

        server = await self._server(handler)
        try:
            invoker = HttpInvoker(RequestRetrier(max_attempts=1))
            with pytest.raises(HttpStatusError, match="HTTP 422: bad x") as exc_info:
                await invoker.invoke(HttpRequest("get", f"http://{server.host}:{server.port}/"))
        finally:
            await server.close()
        assert exc_info.value.status == 422

    async def test_connection_refused(self, unused_tcp_port):
        invoker = HttpInvoker(RequestRetrier(max_attempts=1))
        with pytest.raises(InvocationError, match="failed"):
            await invoker.invoke(HttpRequest("get", f"http://127.0.0.1:{unused_tcp_port}/"))

    async def test_request_timeout(self):
        async def handler(request: web.Request) -> web.Response:
            await asyncio.sleep(0.5)
            return web.Response(text="late")

        server = await self._server(handler)
        try:
            invoker = HttpInvoker(RequestRetrier(max_attempts=3), timeout=0.1)
            with pytest.raises(InvocationError, match="timed out after 0.1s") as exc_info:
                await invoker.invoke(HttpRequest("get", f"http://{server.host}:{server.port}/"))
        finally:
            await server.close()
        assert not isinstance(exc_info.value, HttpStatusError)
