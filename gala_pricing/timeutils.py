"""
Single source for "now". Components take a ``clock`` callable returning
seconds so tests can drive time explicitly; production uses ``time.time``.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], float]

default_clock: Clock = time.time


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def to_utc_iso(ts: Optional[float]) -> Optional[str]:
    """Render clock seconds as ISO-8601 UTC; None passes through."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")
