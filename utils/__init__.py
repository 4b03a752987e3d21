"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_iso, to_epoch_seconds
from utils.clock import Clock, SystemClock, ManualClock
from utils.caller_context import (
    CallerContext,
    get_current_caller,
    set_current_caller,
    clear_current_caller,
)
