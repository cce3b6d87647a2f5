from .cancellation import AbortReason, CancellationController, CancellationToken
from .compose import compose, define_middleware
from .context_builder import RequestContextBuilder
from .error_handler import ErrorHandlingService
from .exceptions import ClientException, InvariantViolation, RequestAborted, ResponseDecodeError, StreamConnectionError
from .http_client import HttpClientService, OutboundRequest, build_outbound_request
from .models import ApiError, ApiResult, ErrorKind, Middleware, Next, RequestConfig, RequestContext, ResponseContext
from .retry import RetryPolicy, send_with_retry

__all__ = [
    'AbortReason',
    'ApiError',
    'ApiResult',
    'CancellationController',
    'CancellationToken',
    'ClientException',
    'ErrorHandlingService',
    'ErrorKind',
    'HttpClientService',
    'InvariantViolation',
    'Middleware',
    'Next',
    'OutboundRequest',
    'RequestAborted',
    'RequestConfig',
    'RequestContext',
    'RequestContextBuilder',
    'ResponseContext',
    'ResponseDecodeError',
    'RetryPolicy',
    'StreamConnectionError',
    'build_outbound_request',
    'compose',
    'define_middleware',
    'send_with_retry',
]
