"""Data models for server-sent event subscriptions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from vafast_client.config.models import SSESettings
from vafast_client.pipeline.models import ApiError

MAX_BACKOFF = 30.0

CallbackResult = Union[None, Awaitable[None]]


@dataclass
class SSEEvent:
    """One parsed frame. ``retry`` is the server hint in milliseconds."""

    data: Any = ''
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


class SubscriptionState(str, Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    OPEN = 'open'
    RECONNECTING = 'reconnecting'
    CLOSED = 'closed'


@dataclass
class SSECallbacks:
    """Caller hooks; each may be a plain function or a coroutine function."""

    on_message: Optional[Callable[[Any], CallbackResult]] = None
    on_error: Optional[Callable[[ApiError], CallbackResult]] = None
    on_open: Optional[Callable[[], CallbackResult]] = None
    on_close: Optional[Callable[[], CallbackResult]] = None
    on_reconnect: Optional[Callable[[int, int], CallbackResult]] = None
    on_max_reconnects: Optional[Callable[[], CallbackResult]] = None


@dataclass
class SSESubscribeOptions:
    headers: Dict[str, str] = field(default_factory=dict)
    reconnect_interval: float = 3.0
    max_reconnects: int = 5
    # Bounds the handshake only, never the open stream
    timeout: Optional[float] = None
    method: str = 'GET'
    max_backoff: float = MAX_BACKOFF
    respect_retry_hint: bool = True

    @classmethod
    def from_settings(cls, settings: SSESettings, **overrides: Any) -> 'SSESubscribeOptions':
        values = {
            'reconnect_interval': settings.reconnect_interval,
            'max_reconnects': settings.max_reconnects,
            'max_backoff': settings.max_backoff,
            'respect_retry_hint': settings.respect_retry_hint,
        }
        values.update(overrides)
        return cls(**values)
