from contextvars import ContextVar, Token
from typing import Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def get_correlation_id() -> Optional[str]:
    """Correlation id of the call currently running in this context."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> Token:
    return correlation_id_var.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    correlation_id_var.reset(token)
