"""Delay strategies used to pace requests against the Strava website."""

from __future__ import annotations

import logging
import time
from typing import Callable

Delay = Callable[[float], None]

LOGGER = logging.getLogger(__name__)


def real_delay(seconds: float) -> None:
    """Block the calling thread for ``seconds``."""

    if seconds <= 0:
        return
    LOGGER.debug("Pausing %.1fs", seconds)
    time.sleep(seconds)


def no_delay(_seconds: float) -> None:
    """Skip pacing entirely (tests, offline tooling)."""

    return None
