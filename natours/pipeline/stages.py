"""
Pipeline stages and the declared stage order.

Stages run top to bottom for every HTTP request; each one either lets the
request continue or answers it. The order matters: static files are served
before any security header is attached, the webhook body is claimed before
the generic parsers run, and sanitizers see the parsed body.
"""

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import parse_qsl

import structlog
from fastapi import status
from starlette.requests import cookie_parser
from starlette.responses import FileResponse

from natours.config import Settings
from natours.errors import AppError
from natours.pipeline.context import CONTINUE, Decision, RequestContext, ShortCircuit, Stage
from natours.pipeline.rate_limit import RequestRateLimiter
from natours.pipeline.sanitize import collapse_repeated, escape_html, strip_operator_keys

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPES = ("application/json",)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def build_csp(directives: Dict[str, List[str]], extra_connect_src: Optional[List[str]] = None) -> str:
    merged = {name: list(sources) for name, sources in directives.items()}
    if extra_connect_src:
        merged.setdefault("connect-src", []).extend(extra_connect_src)
    return "; ".join(f"{name} {' '.join(sources)}" for name, sources in merged.items() if sources)


def static_files(public_dir: Path) -> Stage:
    root = Path(public_dir).resolve()

    def serve(ctx: RequestContext) -> Decision:
        if ctx.method not in ("GET", "HEAD"):
            return CONTINUE
        relative = ctx.path.lstrip("/")
        if not relative:
            return CONTINUE
        candidate = (root / relative).resolve()
        if root not in candidate.parents or not candidate.is_file():
            return CONTINUE
        return ShortCircuit(FileResponse(candidate))

    return Stage("static_files", serve)


def security_headers(settings: Settings) -> Stage:
    extra = settings.csp_dev_connect_src if settings.is_development else None
    policy = build_csp(settings.csp_directives, extra)

    def attach(ctx: RequestContext) -> Decision:
        ctx.response_headers["Content-Security-Policy"] = policy
        return CONTINUE

    return Stage("security_headers", attach)


def _log_request(ctx: RequestContext, status_code: int) -> None:
    duration_ms = (time.perf_counter() - ctx.started_at) * 1000
    logger.info(
        "request",
        method=ctx.method,
        url=ctx.url,
        status=status_code,
        duration=f"{duration_ms:.3f} ms",
    )


def access_log(settings: Settings) -> Stage:
    def register(ctx: RequestContext) -> Decision:
        if settings.is_development:
            ctx.response_callbacks.append(_log_request)
        return CONTINUE

    return Stage("access_log", register)


def rate_limit(limiter: RequestRateLimiter, settings: Settings) -> Stage:
    prefix = settings.api_prefix

    def count(ctx: RequestContext) -> Decision:
        if not (ctx.path == prefix or ctx.path.startswith(prefix + "/")):
            return CONTINUE
        result = limiter.hit(ctx.client_ip)
        ctx.response_headers.update({
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset_at),
        })
        if not result.allowed:
            logger.warning("rate_limit_exceeded", client_ip=ctx.client_ip, path=ctx.path)
            raise AppError(settings.rate_limit_message, status.HTTP_429_TOO_MANY_REQUESTS)
        return CONTINUE

    return Stage("rate_limit", count)


def webhook_raw_body(settings: Settings) -> Stage:
    def claim(ctx: RequestContext) -> Decision:
        if ctx.method == "POST" and ctx.path == settings.webhook_path:
            ctx.body_kind = "raw"
            ctx.parsed_body = ctx.body
        return CONTINUE

    return Stage("webhook_raw_body", claim)


def _parse_form(body: bytes) -> Dict[str, object]:
    parsed: Dict[str, object] = {}
    for key, value in parse_qsl(body.decode("latin-1"), keep_blank_values=True):
        if key in parsed:
            existing = parsed[key]
            parsed[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            parsed[key] = value
    return parsed


def _body_too_large(limit: int) -> AppError:
    return AppError(
        f"Request body is too large. The limit is {limit // 1024}kb.",
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    )


def body_parser(settings: Settings) -> Stage:
    limit = settings.body_limit

    def parse(ctx: RequestContext) -> Decision:
        if ctx.body_overflow:
            raise _body_too_large(settings.webhook_body_limit if ctx.body_kind == "raw" else limit)
        if ctx.body_kind == "raw" or not ctx.body:
            return CONTINUE
        content_type = ctx.content_type
        is_json = content_type in JSON_CONTENT_TYPES or content_type.endswith("+json")
        if not is_json and content_type != FORM_CONTENT_TYPE:
            return CONTINUE
        if len(ctx.body) > limit:
            raise _body_too_large(limit)
        if is_json:
            try:
                ctx.parsed_body = json.loads(ctx.body)
            except ValueError:
                raise AppError("Malformed JSON in request body.", status.HTTP_400_BAD_REQUEST)
            ctx.body_kind = "json"
        else:
            ctx.parsed_body = _parse_form(ctx.body)
            ctx.body_kind = "form"
        return CONTINUE

    return Stage("body_parser", parse)


def _parse_cookies(ctx: RequestContext) -> Decision:
    ctx.cookies = cookie_parser(ctx.headers.get("cookie", ""))
    return CONTINUE


def _sanitize_nosql(ctx: RequestContext) -> Decision:
    ctx.query = strip_operator_keys(ctx.query)
    if ctx.body_kind in ("json", "form"):
        ctx.parsed_body = strip_operator_keys(ctx.parsed_body)
    return CONTINUE


def _sanitize_xss(ctx: RequestContext) -> Decision:
    ctx.query = escape_html(ctx.query)
    if ctx.body_kind in ("json", "form"):
        ctx.parsed_body = escape_html(ctx.parsed_body)
    return CONTINUE


def parameter_pollution(settings: Settings) -> Stage:
    def collapse(ctx: RequestContext) -> Decision:
        ctx.query = collapse_repeated(ctx.query, settings.hpp_whitelist)
        return CONTINUE

    return Stage("parameter_pollution", collapse)


def _stamp_request_time(ctx: RequestContext) -> Decision:
    now = datetime.now(timezone.utc)
    ctx.request_time = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return CONTINUE


def build_stages(settings: Settings, limiter: RequestRateLimiter) -> List[Stage]:
    return [
        static_files(settings.public_dir),
        security_headers(settings),
        access_log(settings),
        rate_limit(limiter, settings),
        webhook_raw_body(settings),
        body_parser(settings),
        Stage("cookie_parser", _parse_cookies),
        Stage("sanitize_nosql", _sanitize_nosql),
        Stage("sanitize_xss", _sanitize_xss),
        parameter_pollution(settings),
        Stage("request_time", _stamp_request_time),
    ]
