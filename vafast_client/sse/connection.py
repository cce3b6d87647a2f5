"""Subscription lifecycle: connect, dispatch, reconnect with backoff."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from vafast_client.common.utils import generate_correlation_id
from vafast_client.common.vars import reset_correlation_id, set_correlation_id
from vafast_client.config.log import get_logger
from vafast_client.pipeline.context_builder import RequestContextBuilder
from vafast_client.pipeline.error_handler import ErrorHandlingService
from vafast_client.pipeline.exceptions import ClientException, StreamConnectionError
from vafast_client.pipeline.http_client import build_outbound_request, is_success_status
from vafast_client.pipeline.models import RequestConfig, RequestContext

from .models import SSECallbacks, SSEEvent, SSESubscribeOptions, SubscriptionState
from .parser import parse_sse_stream

logger = get_logger(__name__)

EVENT_STREAM = 'text/event-stream'
ERROR_EVENT = 'error'

# Failures that move a subscription into the reconnecting state
STREAM_FAILURES = (httpx.HTTPError, httpx.StreamError, ClientException, OSError, asyncio.TimeoutError)


class Subscription:
    """Owns one logical SSE subscription and at most one open stream at a time.

    The reconnect counter resets only after a successful open. A clean end of
    stream is terminal; ``unsubscribe()`` closes without firing ``on_close``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        context_builder: RequestContextBuilder,
        path: str,
        callbacks: Optional[SSECallbacks] = None,
        query: Optional[Mapping[str, Any]] = None,
        options: Optional[SSESubscribeOptions] = None,
        error_handler: Optional[ErrorHandlingService] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = http_client
        self._builder = context_builder
        self.path = path
        self.callbacks = callbacks or SSECallbacks()
        self.query = query
        self.options = options or SSESubscribeOptions()
        self._error_handler = error_handler or ErrorHandlingService()
        self._sleep = sleep

        self._state = SubscriptionState.IDLE
        self._attempts = 0
        self._last_event_id: Optional[str] = None
        self._base_interval = self.options.reconnect_interval
        self._unsubscribed = False
        self._task: Optional[asyncio.Task] = None
        self._correlation_id = generate_correlation_id()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SubscriptionState.OPEN

    @property
    def last_event_id(self) -> Optional[str]:
        return self._last_event_id

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    def start(self) -> 'Subscription':
        if self._task is not None:
            return self
        self._state = SubscriptionState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def add_done_callback(self, fn: Callable[['Subscription'], None]) -> None:
        """Call ``fn(self)`` once the subscription's task has finished."""
        if self._task is None:
            raise RuntimeError('Subscription has not been started')
        self._task.add_done_callback(lambda _: fn(self))

    def unsubscribe(self) -> None:
        """Stop the subscription from any state."""
        self._unsubscribed = True
        self._state = SubscriptionState.CLOSED
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def backoff_delay(self, attempt: int) -> float:
        """Exponential delay in seconds before reconnect ``attempt`` (1-based), capped."""
        return min(self._base_interval * (2 ** (attempt - 1)), self.options.max_backoff)

    async def _run(self) -> None:
        token = set_correlation_id(self._correlation_id)
        try:
            while not self._unsubscribed:
                try:
                    await self._connect()
                except STREAM_FAILURES as exc:
                    if self._unsubscribed:
                        return
                    error = self._error_handler.from_exception(exc)
                    logger.warning('SSE stream failed', path=self.path, kind=error.kind, error=error.message)
                    await self._emit('on_error', error)
                    if not await self._schedule_reconnect():
                        return
                    continue
                except Exception as exc:
                    logger.error('SSE subscription failed', path=self.path, exc_info=True)
                    self._state = SubscriptionState.CLOSED
                    await self._emit('on_error', self._error_handler.from_unhandled(exc))
                    return

                if not self._unsubscribed:
                    self._state = SubscriptionState.CLOSED
                    logger.info('SSE stream closed', path=self.path)
                    await self._emit('on_close')
                return
        finally:
            reset_correlation_id(token)

    async def _schedule_reconnect(self) -> bool:
        limit = self.options.max_reconnects
        if self._attempts >= limit:
            self._state = SubscriptionState.CLOSED
            logger.info('SSE max reconnects reached', path=self.path, max_reconnects=limit)
            await self._emit('on_max_reconnects')
            return False

        self._attempts += 1
        self._state = SubscriptionState.RECONNECTING
        delay = self.backoff_delay(self._attempts)
        logger.info('SSE reconnecting', path=self.path, attempt=self._attempts, max_reconnects=limit, delay=delay)
        await self._emit('on_reconnect', self._attempts, limit)
        await self._sleep(delay)
        return not self._unsubscribed

    def _build_context(self) -> RequestContext:
        headers = {'Accept': EVENT_STREAM}
        headers.update(self.options.headers)
        if self._last_event_id is not None:
            headers['Last-Event-ID'] = self._last_event_id

        method = self.options.method.upper()
        if method in ('GET', 'HEAD'):
            config = RequestConfig(headers=headers)
            body = self.query
        else:
            config = RequestConfig(headers=headers, query=self.query)
            body = None
        config.meta['correlation_id'] = self._correlation_id
        return self._builder.build(method, self.path, body, config)

    async def _connect(self) -> None:
        self._state = SubscriptionState.CONNECTING
        outbound = build_outbound_request(self._build_context())
        request = self._client.build_request(
            outbound.method,
            outbound.url,
            headers=list(outbound.headers),
            content=outbound.content,
            timeout=httpx.Timeout(None),
        )

        handshake = self._client.send(request, stream=True)
        if self.options.timeout is not None:
            response = await asyncio.wait_for(handshake, self.options.timeout)
        else:
            response = await handshake

        try:
            if not is_success_status(response.status_code):
                raise StreamConnectionError(f'HTTP {response.status_code}', status_code=response.status_code)

            self._state = SubscriptionState.OPEN
            self._attempts = 0
            logger.info('SSE stream opened', path=self.path, status=response.status_code)
            await self._emit('on_open')

            async for event in parse_sse_stream(response.aiter_bytes()):
                if self._unsubscribed:
                    return
                await self._dispatch(event)
        finally:
            await response.aclose()

    async def _dispatch(self, event: SSEEvent) -> None:
        if event.id is not None:
            self._last_event_id = event.id or None
        if event.retry is not None and self.options.respect_retry_hint:
            self._base_interval = event.retry / 1000

        if event.event == ERROR_EVENT:
            await self._emit('on_error', self._error_handler.from_event_payload(event.data))
        else:
            await self._emit('on_message', event.data)

    async def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error('SSE callback failed', callback=name, path=self.path, exc_info=True)
