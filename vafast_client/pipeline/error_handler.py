"""Error handling service mapping failures onto ApiError values."""

import asyncio
from typing import Any, Mapping, Optional

import httpx

from .cancellation import AbortReason, CancellationController
from .exceptions import RequestAborted, ResponseDecodeError, StreamConnectionError
from .models import ApiError, ErrorKind

TIMEOUT_CODE = 408


class ErrorHandlingService:
    """Turns exceptions and error payloads into ``ApiError`` so callers never need try/except."""

    def from_exception(self, exc: BaseException, controller: Optional[CancellationController] = None) -> ApiError:
        """Classify a transport-level failure."""

        match exc:
            case RequestAborted():
                return self._from_abort(exc, controller)
            case httpx.TimeoutException() | asyncio.TimeoutError():
                return ApiError(code=TIMEOUT_CODE, message='Request timed out', kind=ErrorKind.TIMEOUT)
            case httpx.RequestError():
                return ApiError(code=0, message=str(exc) or 'Network error', kind=ErrorKind.NETWORK)
            case StreamConnectionError():
                return ApiError(code=exc.status_code or 0, message=exc.message, kind=ErrorKind.SERVER)
            case ResponseDecodeError():
                return ApiError(code=exc.status_code or 0, message=exc.message, kind=ErrorKind.UNKNOWN)
            case _:
                return self.from_unhandled(exc)

    def from_unhandled(self, exc: BaseException) -> ApiError:
        """Errors that escaped the middleware chain are always ``unknown``."""
        return ApiError(code=0, message=str(exc) or exc.__class__.__name__, kind=ErrorKind.UNKNOWN)

    def from_payload(self, payload: Any, status_code: int) -> ApiError:
        """Build a server error from a decoded non-2xx body, falling back to the HTTP status."""

        code, message = self._extract_code_message(payload)
        return ApiError(
            code=status_code if code is None else code,
            message=message or f'HTTP {status_code}',
            kind=ErrorKind.SERVER,
        )

    def from_event_payload(self, payload: Any) -> ApiError:
        """Build an error for an SSE frame whose event name is ``error``."""

        code, message = self._extract_code_message(payload)
        if message is None:
            message = payload if isinstance(payload, str) and payload else 'Stream error event'
        return ApiError(code=0 if code is None else code, message=message, kind=ErrorKind.SERVER)

    def _from_abort(self, exc: RequestAborted, controller: Optional[CancellationController]) -> ApiError:
        if controller is not None:
            timed_out = controller.timed_out
        else:
            timed_out = exc.reason == AbortReason.TIMEOUT.value
        if timed_out:
            return ApiError(code=TIMEOUT_CODE, message='Request timed out', kind=ErrorKind.TIMEOUT)
        return ApiError(code=0, message='Request aborted', kind=ErrorKind.ABORT)

    @staticmethod
    def _extract_code_message(payload: Any):
        if not isinstance(payload, Mapping):
            return None, None
        code = payload.get('code')
        if not isinstance(code, int) or isinstance(code, bool):
            code = None
        message = payload.get('message')
        if not isinstance(message, str) or not message:
            message = None
        return code, message
