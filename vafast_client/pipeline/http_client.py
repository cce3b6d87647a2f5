"""Terminal handler: the single outbound network call at the end of the chain."""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import httpx
import orjson

from vafast_client.common.utils import build_query_string, build_url
from vafast_client.config.log import get_logger

from .context_builder import BODYLESS_METHODS
from .error_handler import ErrorHandlingService
from .exceptions import ClientException, ResponseDecodeError
from .models import RequestContext, ResponseContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutboundRequest:
    """Wire-level description of a request, derived purely from a RequestContext."""

    method: str
    url: str
    headers: Tuple[Tuple[str, str], ...]
    content: Optional[bytes] = None


def encode_body(body: Any) -> bytes:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return orjson.dumps(body)


def build_outbound_request(ctx: RequestContext) -> OutboundRequest:
    """Resolve URL, query string and serialized body.

    GET/HEAD treat the body as the query; other methods send the body as JSON and
    take their query from ``config.query``.
    """
    if ctx.method in BODYLESS_METHODS:
        query_string = build_query_string(ctx.body)
        content = None
    else:
        query_string = build_query_string(ctx.config.query)
        content = encode_body(ctx.body) if ctx.body is not None else None

    url = build_url(ctx.meta.get('base_url', ''), ctx.path, query_string)
    return OutboundRequest(method=ctx.method, url=url, headers=tuple(ctx.headers.multi_items()), content=content)


def media_type(response: httpx.Response) -> str:
    return response.headers.get('content-type', '').split(';')[0].strip().lower()


def decode_body(response: httpx.Response) -> Any:
    """Decode by declared content type; unknown types are left undecoded (None)."""
    kind = media_type(response)
    if kind == 'application/json' or kind.endswith('+json'):
        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise ResponseDecodeError(f'Invalid JSON response: {e}', status_code=response.status_code)
    if kind.startswith('text/'):
        return response.text
    return None


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 400


class HttpClientService:
    def __init__(self, client: httpx.AsyncClient, error_handler: Optional[ErrorHandlingService] = None):
        self._client = client
        self._error_handler = error_handler or ErrorHandlingService()

    def build_request(self, ctx: RequestContext) -> httpx.Request:
        outbound = build_outbound_request(ctx)
        controller = ctx.controller
        timeout = controller.timeout if controller is not None and controller.timeout is not None else httpx.USE_CLIENT_DEFAULT
        return self._client.build_request(outbound.method, outbound.url, headers=list(outbound.headers), content=outbound.content, timeout=timeout)

    async def send(self, ctx: RequestContext) -> ResponseContext:
        """Execute the network call and normalize the outcome. Never raises for transport failures."""
        request = self.build_request(ctx)
        controller = ctx.controller

        try:
            raw = await (controller.run(self._client.send(request)) if controller is not None else self._client.send(request))
        except (httpx.HTTPError, ClientException) as exc:
            error = self._error_handler.from_exception(exc, controller)
            logger.warning('Request failed', method=ctx.method, url=str(request.url), kind=error.kind, error=error.message)
            return ResponseContext.failure(ctx, error)

        try:
            data = decode_body(raw)
        except ResponseDecodeError as exc:
            if is_success_status(raw.status_code):
                return ResponseContext.failure(ctx, self._error_handler.from_exception(exc), raw)
            data = None

        if is_success_status(raw.status_code):
            return ResponseContext.success(ctx, data, raw)

        return ResponseContext.failure(ctx, self._error_handler.from_payload(data, raw.status_code), raw)
