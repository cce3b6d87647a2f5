"""Pipeline domain exceptions."""

from typing import Optional


class ClientException(Exception):
    """Base exception for client operations."""

    def __init__(self, message: str, correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id


class InvariantViolation(ClientException):
    """A middleware invoked its ``next`` more than once."""

    pass


class RequestAborted(ClientException):
    """The per-call cancellation signal fired before the network call finished."""

    def __init__(self, reason: str, correlation_id: Optional[str] = None):
        super().__init__(f'Request aborted ({reason})', correlation_id)
        self.reason = reason


class StreamConnectionError(ClientException):
    """An SSE handshake did not produce a readable event stream."""

    def __init__(self, message: str, status_code: Optional[int] = None, correlation_id: Optional[str] = None):
        super().__init__(message, correlation_id)
        self.status_code = status_code


class ResponseDecodeError(ClientException):
    """A response declared a structured content type but could not be decoded."""

    def __init__(self, message: str, status_code: Optional[int] = None, correlation_id: Optional[str] = None):
        super().__init__(message, correlation_id)
        self.status_code = status_code
