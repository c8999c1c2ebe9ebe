from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable

from .models import Outcome


async def settle_all(tasks: Iterable[tuple[str, Awaitable[Any]]]) -> list[Outcome]:
    """Run keyed awaitables concurrently and wait for every one of them.

    One Outcome per input, in input order. A failing task never cancels its
    siblings; its exception is captured on the Outcome instead.
    """
    pairs = list(tasks)
    if not pairs:
        return []
    results = await asyncio.gather(*(awaitable for _, awaitable in pairs), return_exceptions=True)
    outcomes: list[Outcome] = []
    for (key, _), result in zip(pairs, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            outcomes.append(Outcome(key=key, ok=False, error=result))
        else:
            outcomes.append(Outcome(key=key, ok=True, value=result))
    return outcomes


def successful_values(outcomes: Iterable[Outcome]) -> list[Any]:
    return [outcome.value for outcome in outcomes if outcome.ok]
