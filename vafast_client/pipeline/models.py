"""Domain models for the request pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from .cancellation import CancellationController, CancellationToken


class ErrorKind(str, Enum):
    NETWORK = 'network'
    TIMEOUT = 'timeout'
    ABORT = 'abort'
    SERVER = 'server'
    UNKNOWN = 'unknown'


class ApiError(BaseModel):
    """Structured error returned to callers instead of raising."""

    model_config = ConfigDict(frozen=True)

    code: int
    message: str
    kind: Optional[ErrorKind] = None


@dataclass
class RequestConfig:
    """Per-call overrides."""

    headers: Optional[Mapping[str, str]] = None
    timeout: Optional[float] = None
    signal: Optional[CancellationToken] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    # Query string for methods that also carry a body
    query: Optional[Mapping[str, Any]] = None


@dataclass
class RequestContext:
    """Mutable per-call state threaded through the middleware chain.

    Exactly one exists per logical call and it is never shared between calls.
    """

    method: str
    path: str
    headers: httpx.Headers
    body: Any = None
    config: RequestConfig = field(default_factory=RequestConfig)
    meta: Dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0
    controller: Optional[CancellationController] = None

    @property
    def has_body(self) -> bool:
        return self.body is not None and self.method not in ('GET', 'HEAD')


@dataclass
class ResponseContext:
    """Outcome of one pass through the chain; ``data`` and ``error`` are exclusive."""

    request: RequestContext
    raw: Optional[httpx.Response] = None
    data: Any = None
    error: Optional[ApiError] = None
    status: int = 0

    @classmethod
    def success(cls, request: RequestContext, data: Any, raw: Optional[httpx.Response] = None) -> 'ResponseContext':
        return cls(request=request, raw=raw, data=data, status=raw.status_code if raw is not None else 0)

    @classmethod
    def failure(cls, request: RequestContext, error: ApiError, raw: Optional[httpx.Response] = None) -> 'ResponseContext':
        return cls(request=request, raw=raw, error=error, status=raw.status_code if raw is not None else 0)


@dataclass
class ApiResult:
    """Uniform ``{data, error}`` pair handed back to callers.

    ``error`` is set on every failure. On success ``data`` holds the decoded
    body, and is None when the reply had no body (204, empty JSON) or a content
    type that is not decoded; ``ok`` and ``status`` tell that case apart from
    a failure.
    """

    data: Any = None
    error: Optional[ApiError] = None
    status: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


Next = Callable[[], Awaitable[ResponseContext]]
Middleware = Callable[[RequestContext, Next], Awaitable[ResponseContext]]
Terminal = Callable[[], Awaitable[ResponseContext]]
