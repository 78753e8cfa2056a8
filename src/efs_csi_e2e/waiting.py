"""Bounded blocking waits against the cluster API and the AWS control plane."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from .exceptions import WaitTimeoutError

T = TypeVar("T")

DEFAULT_TIMEOUT = 300.0
DEFAULT_INTERVAL = 2.0
MAX_INTERVAL = 30.0


def poll_until(
    check: Callable[[], tuple[bool, T]],
    description: str,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
) -> T:
    """
    Call ``check`` until it reports completion or ``timeout`` elapses.

    Uses exponential backoff (doubling, capped at 30s) between checks. The
    check may raise to abort the wait early; that exception propagates.

    Args:
        check: Returns ``(done, state)``; ``state`` is returned once done and
            included in the timeout message otherwise
        description: What is being waited for, used in the timeout message
        timeout: Maximum seconds to wait
        interval: Initial delay between checks

    Returns:
        The state reported by the final check

    Raises:
        WaitTimeoutError: If the check does not complete within ``timeout``
    """
    deadline = time.monotonic() + timeout
    last_state: T | None = None

    while True:
        done, last_state = check()
        if done:
            return last_state

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break

        time.sleep(min(interval, MAX_INTERVAL, remaining))
        interval *= 2

    raise WaitTimeoutError(description, timeout, last_state)
