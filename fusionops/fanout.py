from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Outcome(Generic[T, R]):
    item: T
    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_outcomes(func: Callable[[T], Awaitable[R]], items: Iterable[T]) -> list[Outcome[T, R]]:
    """Run `func` over all items concurrently; one failure never cancels its siblings.

    Results come back in input order.
    """

    async def _one(item: T) -> Outcome[T, R]:
        try:
            return Outcome(item=item, value=await func(item))
        except Exception as exc:
            logger.warning("fan-out item %r failed: %s", item, exc)
            return Outcome(item=item, error=exc)

    return list(await asyncio.gather(*(_one(i) for i in items)))


def partition(outcomes: Iterable[Outcome[T, R]]) -> tuple[list[Outcome[T, R]], list[Outcome[T, R]]]:
    ok: list[Outcome[T, R]] = []
    failed: list[Outcome[T, R]] = []
    for o in outcomes:
        (ok if o.ok else failed).append(o)
    return ok, failed
