import asyncio

from vafast_client.pipeline.compose import define_middleware
from vafast_client.pipeline.error_handler import TIMEOUT_CODE
from vafast_client.pipeline.models import ApiError, ErrorKind, Middleware, Next, RequestContext, ResponseContext


def timeout_middleware(seconds: float) -> Middleware:
    """Bound everything below this middleware; a per-call timeout takes precedence over ``seconds``."""

    async def middleware(ctx: RequestContext, next: Next) -> ResponseContext:
        timeout = ctx.config.timeout if ctx.config.timeout is not None else seconds
        try:
            return await asyncio.wait_for(next(), timeout)
        except asyncio.TimeoutError:
            error = ApiError(code=TIMEOUT_CODE, message=f'Request timed out ({timeout}s)', kind=ErrorKind.TIMEOUT)
            return ResponseContext(request=ctx, error=error, status=TIMEOUT_CODE)

    return define_middleware(middleware, 'timeout')
