import time
from typing import Callable, Optional

from vafast_client.config.log import get_logger
from vafast_client.pipeline.compose import define_middleware
from vafast_client.pipeline.models import Middleware, Next, RequestContext, ResponseContext

logger = get_logger(__name__)


def logger_middleware(
    prefix: str = '[API]',
    on_request: Optional[Callable[[RequestContext], None]] = None,
    on_response: Optional[Callable[[ResponseContext], None]] = None,
    enabled: bool = True,
) -> Middleware:
    """Log each request on the way in and its status and duration on the way out.

    Example:
        client = Client('http://localhost:3000').use(logger_middleware())
    """

    async def middleware(ctx: RequestContext, next: Next) -> ResponseContext:
        started = time.perf_counter()

        if on_request is not None:
            on_request(ctx)
        if enabled:
            logger.info(f'{prefix} -> {ctx.method} {ctx.path}')

        response = await next()

        duration_ms = int((time.perf_counter() - started) * 1000)
        if on_response is not None:
            on_response(response)
        if enabled:
            status = f'ERR {response.error.code}' if response.error else str(response.status)
            logger.info(f'{prefix} <- {status} {ctx.path} ({duration_ms}ms)', duration_ms=duration_ms, retries=ctx.retry_count)

        return response

    return define_middleware(middleware, 'logger')
