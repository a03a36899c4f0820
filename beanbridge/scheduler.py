from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

import anyio

logger = logging.getLogger(__name__)


class SweepState:
    def __init__(self) -> None:
        self.running = False
        self.last_started: Optional[float] = None
        self.last_finished: Optional[float] = None
        self.last_error: Optional[str] = None
        self.total_runs = 0
        self.total_errors = 0
        self.total_evicted = 0

    def reset(self) -> None:
        self.__init__()


state = SweepState()
_lock = asyncio.Lock()


async def to_thread(fn, *a, **kw):
    return await anyio.to_thread.run_sync(lambda: fn(*a, **kw))


async def run_periodic(
    task: Callable[[], Awaitable[int]],
    interval: int,
    jitter: int,
    backoff_max: int,
) -> None:
    """Run ``task`` every ``interval`` seconds until cancelled.

    ``task`` returns the number of evicted clients. Failures are recorded in
    :data:`state` and delay the next run with exponential backoff.
    """
    backoff = 1
    while True:
        delay = interval + random.randint(0, max(0, jitter))
        await asyncio.sleep(delay)
        async with _lock:
            if state.running:
                continue
            state.running = True
            state.last_started = time.time()
        try:
            evicted = await task()
            state.last_error = None
            state.total_runs += 1
            state.total_evicted += evicted
            backoff = 1
        except Exception as exc:  # noqa: BLE001
            logger.exception("Staleness sweep failed")
            state.last_error = str(exc)
            state.total_errors += 1
            await asyncio.sleep(min(backoff, backoff_max))
            backoff = min(backoff * 2, backoff_max)
        finally:
            state.last_finished = time.time()
            state.running = False
