"""Async HTTP client with an onion middleware chain and resumable SSE subscriptions."""

from .client import Client, create_client
from .endpoint import Endpoint, PendingRequest
from .middlewares import cache_middleware, logger_middleware, timeout_middleware
from .pipeline import (
    ApiError,
    ApiResult,
    CancellationToken,
    ErrorKind,
    RequestConfig,
    RequestContext,
    ResponseContext,
    RetryPolicy,
    compose,
    define_middleware,
)
from .sse import SSECallbacks, SSEEvent, SSESubscribeOptions, Subscription, SubscriptionState

__version__ = '0.1.0'

__all__ = [
    'ApiError',
    'ApiResult',
    'CancellationToken',
    'Client',
    'Endpoint',
    'ErrorKind',
    'PendingRequest',
    'RequestConfig',
    'RequestContext',
    'ResponseContext',
    'RetryPolicy',
    'SSECallbacks',
    'SSEEvent',
    'SSESubscribeOptions',
    'Subscription',
    'SubscriptionState',
    'cache_middleware',
    'compose',
    'create_client',
    'define_middleware',
    'logger_middleware',
    'timeout_middleware',
]
