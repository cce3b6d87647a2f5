"""Onion-model middleware composition.

Pre-processing runs in installation order, post-processing in reverse order,
and every middleware frame may invoke its ``next`` at most once.
"""

import functools
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from .exceptions import InvariantViolation
from .models import Middleware, Next, RequestContext, ResponseContext, Terminal

Dispatcher = Callable[[RequestContext, Terminal], Awaitable[ResponseContext]]


@dataclass
class _DispatchState:
    """Highest chain index dispatched so far for one call."""

    index: int = -1


def compose(middlewares: Sequence[Middleware]) -> Dispatcher:
    """Compile ``middlewares`` into a single ``dispatch(ctx, terminal)`` function.

    Example:
        dispatch = compose([auth, logger])
        response = await dispatch(ctx, send_request)
    """
    chain = tuple(middlewares)
    for fn in chain:
        if not callable(fn):
            raise TypeError('Middleware must be callable')

    async def dispatcher(ctx: RequestContext, terminal: Terminal) -> ResponseContext:
        state = _DispatchState()

        def dispatch(i: int) -> Awaitable[ResponseContext]:
            # Checked at call time so a second next() fails immediately.
            if i <= state.index:
                raise InvariantViolation('next() called multiple times')
            state.index = i

            if i >= len(chain):
                return terminal()

            next_fn: Next = lambda: dispatch(i + 1)  # noqa: E731
            return chain[i](ctx, next_fn)

        return await dispatch(0)

    return dispatcher


def define_middleware(fn: Middleware, name: Optional[str] = None) -> Middleware:
    """Attach a ``middleware_name`` to ``fn`` for introspection and logging."""
    if not name:
        return fn
    try:
        fn.middleware_name = name
    except AttributeError:
        # bound methods and builtins reject new attributes
        original = fn

        @functools.wraps(original)
        async def fn(ctx: RequestContext, next: Next) -> ResponseContext:
            return await original(ctx, next)

        fn.middleware_name = name
    return fn
