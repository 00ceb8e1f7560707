from __future__ import annotations

"""Retry helper for writes to files that another sync process may hold open."""

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_lock(
    func: Callable[[], T],
    max_retries: int,
    pause: float,
    description: str = "file operation",
) -> T:
    """Call func, retrying on OSError with a fixed pause between attempts.

    Args:
        func: Zero-argument callable performing the file operation
        max_retries: Total number of attempts (at least one is always made)
        pause: Seconds to sleep between attempts
        description: Human-readable operation name for log messages

    Returns:
        Whatever func returns

    Raises:
        OSError: The last error once all attempts are exhausted
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except OSError as e:
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempts} attempt(s): {e}")
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}), "
                f"retrying in {pause:g}s: {e}"
            )
            time.sleep(pause)
    raise RuntimeError("unreachable")
