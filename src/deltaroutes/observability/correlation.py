"""Correlation ID propagation for request and job tracing."""

import uuid
from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Upper bound for client-supplied ids; longer values are replaced.
_MAX_INBOUND_LENGTH = 128


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def accept_or_generate(inbound: str | None) -> str:
    """Reuse a client-supplied correlation ID when it is sane, else mint one."""
    if inbound and len(inbound) <= _MAX_INBOUND_LENGTH and inbound.isprintable():
        return inbound
    return generate_correlation_id()


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)
