"""Wall clock used by the scheduler and messaging layer."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime

# Same shape as a JS Date.toDateString(): "Mon Jan 01 2024"
DATE_FORMAT = "%a %b %d %Y"


def date_string(when: datetime) -> str:
    return when.strftime(DATE_FORMAT)


class SystemClock:
    """Real time: epoch seconds, local calendar date and ``asyncio.sleep``.

    Anything that waits goes through :meth:`sleep`, so tests swap in a
    virtual clock and never touch wall time.
    """

    def now(self) -> float:
        return time.time()

    def today(self) -> str:
        return date_string(datetime.now())

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))
