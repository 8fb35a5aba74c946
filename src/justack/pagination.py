"""Cursor pagination helpers."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import TypeVar

from .types import Page

T = TypeVar("T")


async def paginate(fetch_page: Callable[[str | None], Awaitable[Page[T]]]) -> AsyncIterator[T]:
    """Yield every item, following `next_cursor` until it is null.

    Usage:
        async for session in paginate(fetch_sessions_page):
            print(session.name)
    """
    cursor: str | None = None
    while True:
        page = await fetch_page(cursor)
        for item in page.data:
            yield item
        cursor = page.next_cursor
        if not cursor:
            break


async def collect(items: AsyncIterable[T]) -> list[T]:
    """Gather an async iterable into a list."""
    return [item async for item in items]
