import uuid
from datetime import date, datetime
from typing import Any, Iterator, Mapping, Optional, Tuple
from urllib.parse import quote


def generate_correlation_id() -> str:
    """Generate a new correlation ID for request tracing."""
    return uuid.uuid4().hex


def is_absolute_url(url: str) -> bool:
    return url.startswith('http://') or url.startswith('https://')


def normalize_path(path: str) -> str:
    """Ensure exactly one leading slash."""
    return '/' + (path or '').lstrip('/')


def encode_path_segment(value: Any) -> str:
    """Percent-encode a single dynamic path segment (e.g. an id)."""
    return quote(_stringify(value), safe='')


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _flatten(value: Any, prefix: str) -> Iterator[Tuple[str, str]]:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            yield from _flatten(item, f'{prefix}[{key}]' if prefix else str(key))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            yield from _flatten(item, f'{prefix}[{index}]')
    else:
        yield prefix, _stringify(value)


def build_query_string(params: Optional[Mapping[str, Any]]) -> str:
    """Encode params with bracketed nesting: ``a[0]=x&filter[status]=y``.

    None values are skipped, booleans render as true/false and lists use
    explicit indices.
    """
    if not isinstance(params, Mapping):
        return ''
    return '&'.join(f'{quote(key, safe="[]")}={quote(value, safe="")}' for key, value in _flatten(params, ''))


def build_url(base_url: str, path: str, query_string: str = '') -> str:
    """Join base URL, normalized path and an optional pre-encoded query string."""
    url = path if is_absolute_url(path) else f'{base_url.rstrip("/")}{normalize_path(path)}'
    if not query_string:
        return url
    separator = '&' if '?' in url else '?'
    return f'{url}{separator}{query_string}'
