"""
Bounded-concurrency job pool over an async iterable
"""

import asyncio
import itertools
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar('T')
R = TypeVar('R')

_EXHAUSTED = object()


async def pool(
    items: AsyncIterable[T],
    process: Callable[[T], Awaitable[R]],
    parallel: int,
) -> AsyncIterator[R]:
    """
    Run process over items with at most `parallel` jobs in flight.

    Results are yielded in completion order. The source is pulled lazily, with at
    most one pull outstanding, and only while the pool has room for another job.
    process is expected to encode its own failures in its result; an exception
    escaping it is re-raised here after the remaining jobs are cancelled.
    """
    if parallel < 1:
        raise ValueError(f"parallel must be at least 1, got {parallel}")

    iterator = items.__aiter__()
    id_sequence = itertools.count(1)
    jobs: Dict[asyncio.Future, int] = {}
    pull: Optional[asyncio.Future] = None
    done = False

    async def next_item():
        try:
            return await iterator.__anext__()
        except StopAsyncIteration:
            return _EXHAUSTED

    try:
        while not done or jobs:
            if not done and pull is None and len(jobs) < parallel:
                pull = asyncio.ensure_future(next_item())

            waiting = set(jobs)
            if pull is not None:
                waiting.add(pull)

            finished, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

            if pull is not None and pull in finished:
                item = pull.result()
                pull = None
                if item is _EXHAUSTED:
                    done = True
                else:
                    jobs[asyncio.ensure_future(process(item))] = next(id_sequence)

            # Jobs settling in the same wake-up go out in start order
            for job in sorted((job for job in finished if job in jobs), key=jobs.get):
                del jobs[job]
                yield job.result()
    finally:
        pending = list(jobs)
        if pull is not None:
            pending.append(pull)
        for future in pending:
            future.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
