from .connection import Subscription
from .models import SSECallbacks, SSEEvent, SSESubscribeOptions, SubscriptionState
from .parser import SSEFrameParser, parse_frame, parse_sse_stream

__all__ = [
    'SSECallbacks',
    'SSEEvent',
    'SSEFrameParser',
    'SSESubscribeOptions',
    'Subscription',
    'SubscriptionState',
    'parse_frame',
    'parse_sse_stream',
]
