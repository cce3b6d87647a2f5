"""High-level client: middleware chain, request execution and SSE subscriptions."""

from typing import TYPE_CHECKING, Any, Mapping, Optional, Set, Union

import httpx

from vafast_client.common.vars import reset_correlation_id, set_correlation_id
from vafast_client.config import ConfigurationService
from vafast_client.config.log import configure_structlog, get_logger
from vafast_client.config.models import ClientSettings, SSESettings
from vafast_client.pipeline.compose import Dispatcher, compose, define_middleware
from vafast_client.pipeline.context_builder import RequestContextBuilder
from vafast_client.pipeline.error_handler import ErrorHandlingService
from vafast_client.pipeline.http_client import HttpClientService
from vafast_client.pipeline.models import ApiResult, Middleware, RequestConfig, RequestContext, ResponseContext
from vafast_client.pipeline.retry import RetryPolicy, send_with_retry
from vafast_client.sse.connection import Subscription
from vafast_client.sse.models import SSECallbacks, SSESubscribeOptions

if TYPE_CHECKING:
    from vafast_client.endpoint import Endpoint

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class Client:
    """Executes requests through an onion middleware chain and never raises to the caller.

    Example:
        async with Client('https://api.example.com').use(logger_middleware()) as client:
            result = await client.get('/users', {'page': 1})
            if result.error:
                ...
    """

    def __init__(
        self,
        base_url: str = '',
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry: Optional[RetryPolicy] = None,
        sse_settings: Optional[SSESettings] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self._default_headers = dict(headers or {})
        self._default_timeout = timeout
        self._retry = retry
        self._sse_settings = sse_settings or SSESettings()

        self._owns_http_client = http_client is None
        self._http = http_client if http_client is not None else httpx.AsyncClient()
        self._error_handler = ErrorHandlingService()
        self._transport = HttpClientService(self._http, self._error_handler)

        self._middlewares: list = []
        self._dispatcher: Optional[Dispatcher] = None
        self._subscriptions: Set[Subscription] = set()

    @classmethod
    def from_settings(cls, settings: ClientSettings, http_client: Optional[httpx.AsyncClient] = None) -> 'Client':
        retry = RetryPolicy.from_settings(settings.retry) if settings.retry is not None else None
        return cls(
            settings.base_url,
            timeout=settings.timeout,
            headers=settings.headers,
            http_client=http_client,
            retry=retry,
            sse_settings=settings.sse,
        )

    # Fluent configuration

    def use(self, middleware: Middleware, name: Optional[str] = None) -> 'Client':
        """Append ``middleware``; installed middleware run in insertion order."""
        self._middlewares.append(define_middleware(middleware, name))
        self._dispatcher = None
        return self

    def headers(self, headers: Mapping[str, str]) -> 'Client':
        self._default_headers.update(headers)
        return self

    def timeout(self, seconds: Optional[float]) -> 'Client':
        self._default_timeout = seconds
        return self

    @property
    def middlewares(self) -> tuple:
        return tuple(self._middlewares)

    def context_builder(self) -> RequestContextBuilder:
        return RequestContextBuilder(self.base_url, self._default_headers, self._default_timeout)

    def default_sse_options(self) -> SSESubscribeOptions:
        return SSESubscribeOptions.from_settings(self._sse_settings)

    def _compiled(self) -> Dispatcher:
        if self._dispatcher is None:
            self._dispatcher = compose(self._middlewares)
        return self._dispatcher

    # Execution

    async def request(self, method: str, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        """Run one call through the chain and return ``ApiResult(data, error, status)``."""
        ctx = self.context_builder().build(method, path, body, config)
        token = set_correlation_id(ctx.meta['correlation_id'])
        try:
            logger.debug('Dispatching request', method=ctx.method, path=ctx.path)
            with ctx.controller:
                response = await self._compiled()(ctx, lambda: self._send(ctx))
        except Exception as exc:
            # Exceptions thrown by middleware end up here
            logger.error('Middleware chain failed', method=ctx.method, path=ctx.path, exc_info=True)
            return ApiResult(error=self._error_handler.from_unhandled(exc))
        finally:
            reset_correlation_id(token)

        logger.debug('Request complete', method=ctx.method, path=ctx.path, status=response.status, ok=response.error is None)
        return ApiResult(data=response.data, error=response.error, status=response.status)

    async def _send(self, ctx: RequestContext) -> ResponseContext:
        if self._retry is None:
            return await self._transport.send(ctx)
        return await send_with_retry(lambda: self._transport.send(ctx), ctx, self._retry)

    async def get(self, path: str, query: Optional[Mapping[str, Any]] = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('GET', path, query, config)

    async def head(self, path: str, query: Optional[Mapping[str, Any]] = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('HEAD', path, query, config)

    async def post(self, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('POST', path, body, config)

    async def put(self, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('PUT', path, body, config)

    async def patch(self, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('PATCH', path, body, config)

    async def delete(self, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('DELETE', path, body, config)

    async def options(self, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> ApiResult:
        return await self.request('OPTIONS', path, body, config)

    # Streaming

    def subscribe(
        self,
        path: str,
        callbacks: Optional[SSECallbacks] = None,
        query: Optional[Mapping[str, Any]] = None,
        options: Optional[SSESubscribeOptions] = None,
    ) -> Subscription:
        """Open an SSE subscription. Must be called with a running event loop."""
        subscription = Subscription(
            self._http,
            self.context_builder(),
            path,
            callbacks=callbacks,
            query=query,
            options=options or self.default_sse_options(),
            error_handler=self._error_handler,
        )
        self._subscriptions.add(subscription)
        subscription.start().add_done_callback(self._subscriptions.discard)
        return subscription

    def endpoint(self, *segments: Any) -> 'Endpoint':
        from vafast_client.endpoint import Endpoint

        return Endpoint(self).path(*segments)

    # Lifecycle

    async def aclose(self) -> None:
        """Stop open subscriptions and close the owned HTTP client."""
        subscriptions, self._subscriptions = self._subscriptions, set()
        for subscription in subscriptions:
            subscription.unsubscribe()
        for subscription in subscriptions:
            await subscription.wait_closed()
        if self._owns_http_client:
            await self._http.aclose()

    async def __aenter__(self) -> 'Client':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def create_client(config: Union[str, ClientSettings, None] = None, http_client: Optional[httpx.AsyncClient] = None) -> Client:
    """Create a client from a base URL, a settings object or the YAML config file.

    Settings-based clients also configure structlog from ``settings.logging``.
    """
    if isinstance(config, str):
        return Client(config, http_client=http_client)

    settings = config if config is not None else ConfigurationService().get_settings()
    configure_structlog(settings.logging)
    return Client.from_settings(settings, http_client=http_client)
