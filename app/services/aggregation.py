"""Helpers for joining, merging and paging results from several upstream calls."""

from __future__ import annotations

import asyncio
import math
from enum import Enum
from typing import Any, Awaitable, Iterable, Sequence, TypeVar

from ..query import SortKey
from .tmdb import UpstreamError, UpstreamErrorKind

T = TypeVar("T")

STITCH_FACTOR = 3


class MergeStrategy(str, Enum):
    CONCAT = "concat"
    ALTERNATE = "alternate"


async def with_deadline(seconds: float, work: Awaitable[T]) -> T:
    """Await ``work`` under a single deadline.

    Work still pending when the deadline elapses is cancelled and anything it
    would have produced is discarded.
    """

    try:
        return await asyncio.wait_for(work, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamError(
            UpstreamErrorKind.TIMEOUT, f"deadline of {seconds:g}s elapsed"
        ) from exc


async def gather_all(coroutines: Iterable[Awaitable[T]]) -> list[T]:
    """Run every coroutine concurrently; the first failure cancels the rest."""

    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Let cancelled siblings settle so nothing leaks past the join.
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def physical_pages(logical_page: int, factor: int = STITCH_FACTOR) -> list[int]:
    """Return the upstream pages covering ``logical_page`` when stitching."""

    first = factor * (logical_page - 1) + 1
    return list(range(first, first + factor))


def merge(
    first: Sequence[T], second: Sequence[T], strategy: MergeStrategy
) -> list[T]:
    """Combine two result sequences, either back to back or round robin."""

    if strategy is MergeStrategy.CONCAT:
        return [*first, *second]

    merged: list[T] = []
    for index in range(max(len(first), len(second))):
        if index < len(first):
            merged.append(first[index])
        if index < len(second):
            merged.append(second[index])
    return merged


def deduplicate(items: Iterable[Any]) -> list[Any]:
    """Drop repeated ``(media_type, id)`` pairs, keeping the first occurrence."""

    seen: set[tuple[str, int]] = set()
    unique: list[Any] = []
    for item in items:
        if item.identity in seen:
            continue
        seen.add(item.identity)
        unique.append(item)
    return unique


def sort_items(items: Sequence[Any], sort_key: SortKey | None) -> list[Any]:
    """Order merged results by the requested key; ties keep upstream order."""

    if sort_key is SortKey.POPULARITY:
        return sorted(items, key=lambda item: item.popularity, reverse=True)
    if sort_key is SortKey.RATING:
        return sorted(items, key=lambda item: item.vote_average, reverse=True)
    if sort_key is SortKey.RELEASE_DATE:
        return sorted(items, key=lambda item: item.sort_date, reverse=True)
    return list(items)


def slice_page(items: Sequence[T], page: int, page_size: int) -> list[T]:
    start = (page - 1) * page_size
    return list(items[start : start + page_size])


def count_pages(total_results: int, page_size: int) -> int:
    if total_results <= 0:
        return 0
    return math.ceil(total_results / page_size)
