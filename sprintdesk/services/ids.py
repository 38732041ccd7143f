"""Client-side identifier generation.

Ids combine a fixed-width millisecond timestamp, a per-generator counter and a
random component, so two ids from one generator never collide even within the
same millisecond, and they sort lexically in creation order. Issue ids carry
40 random bits so ids from separate generators (other clients) stay apart.
"""

import itertools
import secrets
import time
from typing import Callable, Optional


class IdGenerator:
    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._counter = itertools.count(1)

    def _next(self) -> int:
        return next(self._counter)

    def new_id(self, prefix: str) -> str:
        """``prefix-<11 hex ms><6 hex counter><4 hex random>``."""
        millis = int(self._clock() * 1000)
        return f"{prefix}-{millis:011x}{self._next() % 0x1000000:06x}{secrets.token_hex(2)}"

    def issue_id(self, project_key: str) -> str:
        """Human readable issue id, e.g. ``PROJ-1A3F09C27B4``."""
        return f"{project_key}-{self._next()}{secrets.token_hex(5).upper()}"
