from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..feed import MessageFeed
from ..models import Bookmark, FetchPage, Room
from ..result import ErrorCode, Result


@dataclass(slots=True)
class LocalMessageSource:
    """
    直接读本地 MessageFeed 的数据源。

    sqlite3 调用是阻塞的，放到线程里执行，避免卡住事件循环。
    """

    feed: MessageFeed
    viewer_id: str

    def key(self) -> str:
        return f"local:{self.viewer_id}"

    async def fetch_messages(self, room_id: str, after_id: str | None = None) -> Result[FetchPage, ErrorCode]:
        return await asyncio.to_thread(
            lambda: self.feed.fetch_messages(room_id, self.viewer_id, after_id=after_id)
        )

    async def fetch_rooms(self, search: str | None = None) -> Result[tuple[Room, ...], ErrorCode]:
        return await asyncio.to_thread(lambda: self.feed.fetch_rooms(self.viewer_id, search=search))

    async def fetch_bookmarks(self) -> Result[tuple[Bookmark, ...], ErrorCode]:
        return await asyncio.to_thread(lambda: self.feed.fetch_bookmarks(self.viewer_id))
