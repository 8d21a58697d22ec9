from __future__ import annotations

from typing import Protocol

from ..models import Bookmark, FetchPage, Room
from ..result import ErrorCode, Result


class MessageSource(Protocol):
    """
    “自 cursor 以来”的增量拉取接口（异步）。

    - after_id 缺省：返回最新一页
    - after_id 存在：返回 id > after_id 的全部消息（升序，受单次上限约束）
    失败以 Err 返回，不抛异常。
    """

    def key(self) -> str: ...

    async def fetch_messages(self, room_id: str, after_id: str | None = None) -> Result[FetchPage, ErrorCode]: ...


class SnapshotSource(Protocol):
    """房间列表 / 书签列表的整体快照拉取。"""

    async def fetch_rooms(self, search: str | None = None) -> Result[tuple[Room, ...], ErrorCode]: ...

    async def fetch_bookmarks(self) -> Result[tuple[Bookmark, ...], ErrorCode]: ...
