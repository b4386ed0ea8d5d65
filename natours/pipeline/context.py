"""Request context and stage decisions shared by every pipeline stage."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from starlette.responses import Response

ResponseCallback = Callable[["RequestContext", int], None]


@dataclass
class RequestContext:
    method: str
    path: str
    query_string: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    client_ip: str = "unknown"
    body: bytes = b""
    # set when reading stopped at the body limit; ``body`` is then incomplete
    body_overflow: bool = False
    query: Dict[str, List[str]] = field(default_factory=dict)
    parsed_body: Any = None
    body_kind: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    request_time: Optional[str] = None
    started_at: float = field(default_factory=time.perf_counter)
    response_headers: Dict[str, str] = field(default_factory=dict)
    response_callbacks: List[ResponseCallback] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.query_string and not self.query:
            for key, value in parse_qsl(self.query_string, keep_blank_values=True):
                self.query.setdefault(key, []).append(value)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";")[0].strip().lower()

    @property
    def url(self) -> str:
        return f"{self.path}?{self.query_string}" if self.query_string else self.path


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class ShortCircuit:
    response: Response


Decision = Union[Continue, ShortCircuit]

CONTINUE = Continue()


@dataclass(frozen=True)
class Stage:
    """A named pipeline step.

    ``func`` inspects and may update the context; it returns CONTINUE to
    pass control onward or ShortCircuit to answer the request itself.
    Failures are raised as AppError.
    """

    name: str
    func: Callable[[RequestContext], Decision]

    def __call__(self, ctx: RequestContext) -> Decision:
        return self.func(ctx)
