"""Server clock helpers.

All deadlines are computed from timestamps stored by the server; client
clocks are never consulted.
"""
import time


def now_ms() -> int:
    """Current server time in epoch milliseconds."""
    return int(time.time() * 1000)


def elapsed_ms(since_ms: int) -> int:
    return now_ms() - int(since_ms)
