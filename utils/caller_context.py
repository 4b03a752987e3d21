"""Propagate the calling principal through the call stack using contextvars."""

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class CallerContext:
    """
    Identity and request metadata of whoever is calling the checkout API.

    customer_id is set for authenticated shoppers, anonymous_id for
    guests. source_address and user_agent are carried for audit records.
    """

    customer_id: str | None = None
    anonymous_id: str | None = None
    source_address: str | None = None
    user_agent: str | None = None

    @property
    def principal(self) -> str | None:
        """The id used for display in logs and audit records."""
        return self.customer_id or self.anonymous_id


_current_caller: ContextVar[CallerContext | None] = ContextVar("current_caller", default=None)


def get_current_caller() -> CallerContext:
    """
    Get current caller from context.

    Raises RuntimeError if no caller context is set. Reaching checkout
    code without one means the middleware was bypassed.
    """
    caller = _current_caller.get()
    if caller is None:
        raise RuntimeError(
            "No caller context set. This usually means checkout code "
            "was called outside of an identified request."
        )
    return caller


def set_current_caller(caller: CallerContext) -> None:
    """Set current caller. Called by CallerMiddleware."""
    _current_caller.set(caller)


def clear_current_caller() -> None:
    """
    Clear caller context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_caller.set(None)
