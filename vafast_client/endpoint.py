"""Fluent path builder and lazily executed requests."""

import asyncio
import dataclasses
from typing import TYPE_CHECKING, Any, Generator, Mapping, Optional, Tuple

from vafast_client.common.utils import encode_path_segment
from vafast_client.pipeline.models import ApiResult, RequestConfig
from vafast_client.sse.connection import Subscription
from vafast_client.sse.models import SSECallbacks, SSESubscribeOptions

if TYPE_CHECKING:
    from vafast_client.client import Client


class PendingRequest:
    """A request that runs on first await, exactly once.

    Never awaiting it means no network I/O happens. Awaiting it again returns
    the same ``ApiResult``.
    """

    def __init__(self, client: 'Client', method: str, path: str, body: Any = None, config: Optional[RequestConfig] = None):
        self._client = client
        self.method = method
        self.path = path
        self.body = body
        self.config = config
        self._future: Optional['asyncio.Future[ApiResult]'] = None
        self._subscription: Optional[Subscription] = None

    @property
    def executed(self) -> bool:
        return self._future is not None or self._subscription is not None

    def _execute(self) -> 'asyncio.Future[ApiResult]':
        if self._subscription is not None:
            raise RuntimeError('Request was turned into an SSE subscription')
        if self._future is None:
            self._future = asyncio.ensure_future(self._client.request(self.method, self.path, self.body, self.config))
        return self._future

    def __await__(self) -> Generator[Any, None, ApiResult]:
        return self._execute().__await__()

    def sse(self, callbacks: Optional[SSECallbacks] = None, options: Optional[SSESubscribeOptions] = None) -> Subscription:
        """Subscribe instead of executing; only valid before the first await."""
        if self.executed:
            raise RuntimeError('Request already executed')

        if self.method in ('GET', 'HEAD'):
            query = self.body
        else:
            query = self.config.query if self.config is not None else None
        if options is not None:
            options = dataclasses.replace(options, method=self.method)
        elif self.method != 'GET':
            options = dataclasses.replace(self._client.default_sse_options(), method=self.method)

        self._subscription = self._client.subscribe(self.path, callbacks, query, options)
        return self._subscription

    def __repr__(self) -> str:
        return f'<PendingRequest {self.method} {self.path} executed={self.executed}>'


class Endpoint:
    """Immutable path builder; every step returns a new Endpoint.

    Example:
        result = await client.endpoint('users').param(user_id).path('posts').get({'page': 2})
    """

    def __init__(self, client: 'Client', segments: Tuple[str, ...] = ()):
        self._client = client
        self._segments = segments

    def path(self, *segments: Any) -> 'Endpoint':
        """Append literal segments; ``'a/b'`` counts as two segments."""
        parts = list(self._segments)
        for segment in segments:
            parts.extend(part for part in str(segment).split('/') if part)
        return Endpoint(self._client, tuple(parts))

    def param(self, value: Any) -> 'Endpoint':
        """Append one URL-encoded dynamic segment."""
        return Endpoint(self._client, self._segments + (encode_path_segment(value),))

    @property
    def url_path(self) -> str:
        return '/' + '/'.join(self._segments)

    def _pending(self, method: str, body: Any, config: Optional[RequestConfig]) -> PendingRequest:
        return PendingRequest(self._client, method, self.url_path, body, config)

    def get(self, query: Optional[Mapping[str, Any]] = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('GET', query, config)

    def head(self, query: Optional[Mapping[str, Any]] = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('HEAD', query, config)

    def post(self, body: Any = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('POST', body, config)

    def put(self, body: Any = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('PUT', body, config)

    def patch(self, body: Any = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('PATCH', body, config)

    def delete(self, body: Any = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('DELETE', body, config)

    def options(self, body: Any = None, config: Optional[RequestConfig] = None) -> PendingRequest:
        return self._pending('OPTIONS', body, config)

    def sse(
        self,
        callbacks: Optional[SSECallbacks] = None,
        query: Optional[Mapping[str, Any]] = None,
        options: Optional[SSESubscribeOptions] = None,
    ) -> Subscription:
        return self._client.subscribe(self.url_path, callbacks, query, options)

    def __repr__(self) -> str:
        return f'<Endpoint {self.url_path}>'
