from __future__ import annotations

import asyncio
from typing import Any, Callable

from .constants import POLLING_INTERVAL_MS, POLLING_MAX_RETRIES
from .models import Bookmark, Room
from .poller import PollingEngine, Sleep, configure
from .sources.base import SnapshotSource


def watch_rooms(
    source: SnapshotSource,
    *,
    search: str | None = None,
    interval: int = POLLING_INTERVAL_MS,
    max_retries: int = POLLING_MAX_RETRIES,
    on_success: Callable[[tuple[Room, ...]], None] | None = None,
    on_error: Callable[[Any], None] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> PollingEngine[tuple[Room, ...]]:
    """房间列表没有 cursor，每次都拉整体快照并覆盖 data。"""
    return configure(
        lambda: source.fetch_rooms(search),
        interval=interval,
        max_retries=max_retries,
        on_success=on_success,
        on_error=on_error,
        sleep=sleep,
        name="rooms",
    )


def watch_bookmarks(
    source: SnapshotSource,
    *,
    interval: int = POLLING_INTERVAL_MS,
    max_retries: int = POLLING_MAX_RETRIES,
    on_success: Callable[[tuple[Bookmark, ...]], None] | None = None,
    on_error: Callable[[Any], None] | None = None,
    sleep: Sleep = asyncio.sleep,
) -> PollingEngine[tuple[Bookmark, ...]]:
    return configure(
        source.fetch_bookmarks,
        interval=interval,
        max_retries=max_retries,
        on_success=on_success,
        on_error=on_error,
        sleep=sleep,
        name="bookmarks",
    )
