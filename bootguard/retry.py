"""Bounded polling shared by the CLI-workspace wait and the readiness wait."""

import time
from typing import Callable


def bounded_retry(
    predicate: Callable[[], bool],
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Callable[[int], None] = None,
) -> bool:
    """Poll `predicate` until it holds or `attempts` sleeps have elapsed.

    The predicate is evaluated once up front and once after every sleep,
    so it runs at most `attempts + 1` times and the helper sleeps at most
    `attempts` times. Exceptions from the predicate propagate.

    Args:
        predicate: Condition to wait for
        attempts: Maximum number of waits
        interval: Seconds between evaluations
        sleep: Sleep function (injectable for tests)
        on_wait: Called with the 1-based wait number before each sleep

    Returns:
        True if the predicate held, False if the attempts were exhausted
    """
    if predicate():
        return True
    for attempt in range(1, attempts + 1):
        if on_wait is not None:
            on_wait(attempt)
        sleep(interval)
        if predicate():
            return True
    return False
