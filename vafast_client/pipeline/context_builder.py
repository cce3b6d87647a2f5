from typing import Any, Mapping, Optional

import httpx

from vafast_client.common.utils import generate_correlation_id, is_absolute_url, normalize_path

from .cancellation import CancellationController
from .models import RequestConfig, RequestContext

BODYLESS_METHODS = frozenset({'GET', 'HEAD'})
JSON_CONTENT_TYPE = 'application/json'


class RequestContextBuilder:
    """Builds one ``RequestContext`` per call from client defaults and per-call overrides."""

    def __init__(self, base_url: str = '', default_headers: Optional[Mapping[str, str]] = None, default_timeout: Optional[float] = None):
        self.base_url = base_url.rstrip('/')
        self.default_headers = dict(default_headers or {})
        self.default_timeout = default_timeout

    def build(self, method: str, path: str, body: Any = None, config: Optional[RequestConfig] = None) -> RequestContext:
        method = method.upper()
        config = config or RequestConfig()
        has_body = body is not None and method not in BODYLESS_METHODS

        headers = httpx.Headers({'Content-Type': JSON_CONTENT_TYPE} if has_body else {})
        headers.update(self.default_headers)
        if not has_body:
            # No payload, so a default content type would be misleading
            headers.pop('content-type', None)
        if config.headers:
            headers.update(config.headers)

        meta = dict(config.meta)
        meta['base_url'] = self.base_url
        meta.setdefault('correlation_id', generate_correlation_id())

        timeout = config.timeout if config.timeout is not None else self.default_timeout

        return RequestContext(
            method=method,
            path=path if is_absolute_url(path) else normalize_path(path),
            headers=headers,
            body=body,
            config=config,
            meta=meta,
            controller=CancellationController(timeout=timeout, token=config.signal),
        )
