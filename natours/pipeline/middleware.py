"""
ASGI middleware that runs the declared stages in order.

The request body is buffered once, handed to the stages, and replayed to
the application after sanitization so route handlers only ever see the
cleaned query string and body.
"""

import json
from typing import List, Sequence, Tuple
from urllib.parse import urlencode

import structlog
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from natours.config import Settings
from natours.errors import AppError, render_error
from natours.pipeline.context import RequestContext, ShortCircuit, Stage

logger = structlog.get_logger(__name__)


async def _read_body(receive: Receive, limit: int) -> Tuple[bytes, bool]:
    """Buffer the request body, giving up as soon as it grows past ``limit``.

    Returns the bytes read so far and whether the limit was exceeded.
    """
    chunks: List[bytes] = []
    size = 0
    more_body = True
    while more_body:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunk = message.get("body", b"")
        size += len(chunk)
        if size > limit:
            return b"".join(chunks), True
        chunks.append(chunk)
        more_body = message.get("more_body", False)
    return b"".join(chunks), False


def _client_ip(scope: Scope, headers: dict, trust_proxy: bool) -> str:
    if trust_proxy and headers.get("x-forwarded-for"):
        return headers["x-forwarded-for"].split(",")[0].strip()
    client = scope.get("client")
    return client[0] if client else "unknown"


def _encode_body(ctx: RequestContext) -> bytes:
    if ctx.body_kind == "json":
        return json.dumps(ctx.parsed_body).encode("utf-8")
    if ctx.body_kind == "form":
        return urlencode(ctx.parsed_body, doseq=True).encode("utf-8")
    return ctx.body


class PipelineMiddleware:
    def __init__(self, app: ASGIApp, stages: Sequence[Stage], settings: Settings) -> None:
        self.app = app
        self.stages = list(stages)
        self.settings = settings

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["path"] == self.settings.webhook_path:
            limit = self.settings.webhook_body_limit
        else:
            limit = self.settings.body_limit
        body, overflow = await _read_body(receive, limit)
        headers = {
            key.decode("latin-1").lower(): value.decode("latin-1")
            for key, value in scope.get("headers", [])
        }
        ctx = RequestContext(
            method=scope["method"].upper(),
            path=scope["path"],
            query_string=scope.get("query_string", b"").decode("latin-1"),
            headers=headers,
            client_ip=_client_ip(scope, headers, self.settings.trust_proxy),
            body=body,
            body_overflow=overflow,
        )

        send = self._wrap_send(send, ctx)

        try:
            for stage in self.stages:
                decision = stage(ctx)
                if isinstance(decision, ShortCircuit):
                    await decision.response(scope, receive, send)
                    return
        except AppError as exc:
            response = render_error(Request(scope), exc, self.settings)
            await response(scope, receive, send)
            return

        await self.app(self._downstream_scope(scope, ctx), self._replay(receive, ctx), send)

    def _downstream_scope(self, scope: Scope, ctx: RequestContext) -> Scope:
        scope = dict(scope)
        scope["query_string"] = urlencode(ctx.query, doseq=True).encode("latin-1")

        new_body = _encode_body(ctx)
        ctx.body = new_body
        raw_headers = MutableHeaders(raw=list(scope.get("headers", [])))
        if "content-length" in raw_headers or new_body:
            raw_headers["content-length"] = str(len(new_body))
        scope["headers"] = raw_headers.raw

        state = scope.setdefault("state", {})
        state["request_time"] = ctx.request_time
        state["cookies"] = ctx.cookies
        state["client_ip"] = ctx.client_ip
        if ctx.body_kind == "raw":
            state["raw_body"] = ctx.body
        return scope

    def _replay(self, receive: Receive, ctx: RequestContext) -> Receive:
        sent = False

        async def replay() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": ctx.body, "more_body": False}
            return await receive()

        return replay

    def _wrap_send(self, send: Send, ctx: RequestContext) -> Send:
        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in ctx.response_headers.items():
                    headers[name] = value
                for callback in ctx.response_callbacks:
                    callback(ctx, message["status"])
            await send(message)

        return send_with_headers
