"""Epoch-millisecond timestamps, the unit every stored time uses."""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
