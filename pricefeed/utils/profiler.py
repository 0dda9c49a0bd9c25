"""
Timing utilities for fetch runs.

Usage:
    from pricefeed.utils.profiler import profile_block

    with profile_block("fetch-run") as stats:
        await run()

    print(stats.started_at, stats.elapsed_ms)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generator, Optional


@dataclass
class ProfileStats:
    """
    Container for timing measurements of one block.
    """

    label: str
    started_at: Optional[datetime] = field(default=None)
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds since the block started; final once the block exits."""
        if self.end_ts:
            return int(round(self.duration_seconds * 1000))
        return int(round((time.perf_counter() - self.start_ts) * 1000))


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Context manager recording wall-clock start time and perf-counter duration.

    `elapsed_ms` may be read inside the block (e.g. to report the duration of
    a run that is returning early); it is fixed once the block exits.
    """
    stats = ProfileStats(label=label)
    stats.started_at = datetime.now(timezone.utc)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts


__all__ = ["ProfileStats", "profile_block"]
