from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from time import sleep
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    ok: bool
    attempts: int
    value: T | None = None
    last_error: str | None = None


def retry_bounded(
    fn: Callable[[int], T],
    *,
    attempts: int,
    backoff_s: float = 0.0,
    label: str = "operation",
) -> RetryOutcome[T]:
    """
    Calls `fn(attempt)` (1-based) until it returns a truthy value or `attempts` run out.

    A raised exception or a falsy return counts as a failed attempt. The message of the
    last failure is kept verbatim in `last_error`. Backoff doubles per attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    if backoff_s < 0:
        raise ValueError("backoff_s must be >= 0")

    last_error: str | None = None
    for attempt in range(1, attempts + 1):
        logger.info("%s: attempt %d/%d", label, attempt, attempts)
        try:
            value = fn(attempt)
        except Exception as e:  # noqa: BLE001
            last_error = str(e) or type(e).__name__
            logger.warning("%s: attempt %d failed: %s", label, attempt, last_error)
        else:
            if value:
                return RetryOutcome(ok=True, attempts=attempt, value=value, last_error=last_error)
            last_error = f"{label} returned no result"
            logger.warning("%s: attempt %d returned no result", label, attempt)
        if attempt < attempts and backoff_s:
            sleep(backoff_s * (2 ** (attempt - 1)))

    return RetryOutcome(ok=False, attempts=attempts, last_error=last_error)
