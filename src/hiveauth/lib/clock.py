"""Wall clock in the relay's unit (epoch milliseconds)."""

import time
from typing import Callable

Clock = Callable[[], float]


def now_ms() -> float:
    return time.time() * 1000
