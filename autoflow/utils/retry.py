from __future__ import annotations

import asyncio


def compute_backoff(attempt: int, base: float = 1.0) -> float:
    """Compute linear backoff: ``base`` seconds per attempt."""
    return max(0.0, base * attempt)


async def schedule_retry(attempt: int, base: float = 1.0) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base)
    await asyncio.sleep(delay)
