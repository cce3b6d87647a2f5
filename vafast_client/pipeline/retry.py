import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from vafast_client.config.log import get_logger
from vafast_client.config.models import RetrySettings

from .error_handler import ErrorHandlingService
from .exceptions import RequestAborted
from .models import ErrorKind, RequestContext, ResponseContext

logger = get_logger(__name__)

DEFAULT_RETRY_STATUS = (408, 429, 500, 502, 503, 504)


@dataclass
class RetryPolicy:
    """Re-issues the network call inside the terminal handler.

    Middleware cannot retry by calling ``next`` twice, so retries happen below the chain.
    """

    count: int = 3
    delay: float = 1.0
    backoff: bool = True
    on: Tuple[int, ...] = DEFAULT_RETRY_STATUS
    should_retry: Optional[Callable[[ResponseContext], bool]] = None

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> 'RetryPolicy':
        return cls(count=settings.count, delay=settings.delay, backoff=settings.backoff, on=tuple(settings.on))

    def wants_retry(self, response: ResponseContext) -> bool:
        error = response.error
        if error is None or error.kind in (ErrorKind.TIMEOUT, ErrorKind.ABORT):
            return False
        if self.should_retry is not None:
            return self.should_retry(response)
        return error.kind == ErrorKind.NETWORK or response.status in self.on

    def delay_for(self, attempt: int) -> float:
        return self.delay * (2**attempt) if self.backoff else self.delay


async def send_with_retry(
    send: Callable[[], Awaitable[ResponseContext]],
    ctx: RequestContext,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ResponseContext:
    """Call ``send`` until it succeeds or ``policy`` gives up, counting attempts on ``ctx.retry_count``."""
    while True:
        response = await send()
        if ctx.retry_count >= policy.count or not policy.wants_retry(response):
            return response

        wait = policy.delay_for(ctx.retry_count)
        logger.info('Retrying request', method=ctx.method, path=ctx.path, status=response.status, attempt=ctx.retry_count + 1, delay=wait)
        try:
            if ctx.controller is not None:
                await ctx.controller.run(sleep(wait))
            else:
                await sleep(wait)
        except RequestAborted as exc:
            return ResponseContext.failure(ctx, ErrorHandlingService().from_exception(exc, ctx.controller))
        ctx.retry_count += 1
