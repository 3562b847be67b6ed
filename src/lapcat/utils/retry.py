"""Bounded retry for elements that render after the page reports ready."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Try once, then retry up to ``attempts`` times waiting ``delay`` seconds.

    An attempt "fails" when it returns ``None``; the last result is returned
    as-is, so callers decide whether ``None`` is fatal.
    """

    attempts: int = 3
    delay: float = 1.0

    async def attempt(
        self,
        lookup: Callable[[], Awaitable[Optional[T]]],
        sleep: Sleep = asyncio.sleep,
    ) -> Optional[T]:
        result = await lookup()
        for _ in range(self.attempts):
            if result is not None:
                break
            await sleep(self.delay)
            result = await lookup()
        return result


NO_RETRY = RetryPolicy(attempts=0, delay=0.0)
