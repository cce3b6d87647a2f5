"""Built-in middleware."""

from .cache import ResponseCache, cache_middleware
from .logger import logger_middleware
from .timeout import timeout_middleware

__all__ = ['ResponseCache', 'cache_middleware', 'logger_middleware', 'timeout_middleware']
