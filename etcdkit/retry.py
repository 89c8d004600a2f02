"""Retrying a condition a bounded number of times."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backoff:
    """How long to wait between tries (seconds) and how many tries to make."""

    duration: float
    attempts: int


def sleep_until(
    backoff: Backoff,
    condition: Callable[[], bool],
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call condition until it returns True or the attempts run out.

    Returns True once the condition is met and False when every attempt was
    used. An exception raised by the condition propagates at once.
    """
    attempts = backoff.attempts
    while attempts > 0:
        if condition():
            return True
        attempts -= 1
        if attempts == 0:
            break
        log.debug("condition not met; retrying in %ss", backoff.duration)
        sleep(backoff.duration)
    return False