"""Optional response cache middleware.

Entries are keyed by (base URL, method, path, canonical query, body hash) and
live in a store owned by the middleware instance, so differently configured
clients never see each other's entries.
"""

import copy
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import orjson

from vafast_client.common.utils import normalize_path
from vafast_client.pipeline.compose import define_middleware
from vafast_client.pipeline.context_builder import BODYLESS_METHODS
from vafast_client.pipeline.models import Middleware, Next, RequestContext, ResponseContext

_CANONICAL_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS


def _canonical(value: Any) -> bytes:
    if value is None:
        return b''
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return orjson.dumps(value, option=_CANONICAL_OPTIONS)


def canonical_cache_key(ctx: RequestContext) -> str:
    if ctx.method in BODYLESS_METHODS:
        query, body = ctx.body, None
    else:
        query, body = ctx.config.query, ctx.body

    body_hash = hashlib.sha256(_canonical(body)).hexdigest() if body is not None else ''
    return '|'.join((ctx.meta.get('base_url', ''), ctx.method, normalize_path(ctx.path), _canonical(query).decode('utf-8', 'replace'), body_hash))


@dataclass
class _CacheEntry:
    response: ResponseContext
    expires_at: float


class ResponseCache:
    """TTL store with oldest-first eviction once ``max_size`` is reached."""

    def __init__(self, ttl: float = 60.0, max_size: int = 256, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: 'OrderedDict[str, _CacheEntry]' = OrderedDict()

    def get(self, key: str) -> Optional[ResponseContext]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.response

    def set(self, key: str, response: ResponseContext) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = _CacheEntry(response=response, expires_at=self._clock() + self.ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cache_middleware(
    ttl: float = 60.0,
    max_size: int = 256,
    methods: Iterable[str] = ('GET', 'HEAD'),
    cache: Optional[ResponseCache] = None,
) -> Middleware:
    """Serve repeated successful responses from memory; a hit skips the rest of the chain."""
    store = cache if cache is not None else ResponseCache(ttl=ttl, max_size=max_size)
    cacheable = frozenset(method.upper() for method in methods)

    async def middleware(ctx: RequestContext, next: Next) -> ResponseContext:
        if ctx.method not in cacheable:
            return await next()

        key = canonical_cache_key(ctx)
        cached = store.get(key)
        if cached is not None:
            ctx.meta['cache_hit'] = True
            return ResponseContext(request=ctx, raw=cached.raw, data=copy.deepcopy(cached.data), status=cached.status)

        response = await next()
        if response.error is None:
            store.set(key, response)
        return response

    middleware.cache = store
    return define_middleware(middleware, 'cache')
