from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from .constants import BOOKMARK_FETCH_LIMIT, INITIAL_MESSAGE_LIMIT, MESSAGE_FETCH_LIMIT
from .models import Bookmark, FetchPage, Pagination, Room, is_message_id
from .result import Err, ErrorCode, Ok, Result
from .store.base import MessageStore


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MessageFeed:
    """
    增量拉取契约（只读）。

    所有方法都不抛异常：数据源异常统一转为 Err(INTERNAL_ERROR)，
    由调用方检查 tag 后再使用结果。
    """

    store: MessageStore
    fetch_limit: int = MESSAGE_FETCH_LIMIT
    initial_limit: int = INITIAL_MESSAGE_LIMIT

    def fetch_messages(
        self,
        room_id: str,
        viewer_id: str,
        *,
        after_id: str | None = None,
        pagination: Pagination | None = None,
    ) -> Result[FetchPage, ErrorCode]:
        """
        拉取房间消息。

        - after_id 存在：返回 id 严格大于 after_id 的全部消息（升序，单次上限 fetch_limit），has_more=False
        - after_id 缺省：返回最新一页（pagination 缺省时为 initial_limit 条），升序
        - 软删除的消息一律排除
        - viewer 不是房间成员时返回 NOT_A_MEMBER
        """
        if after_id is not None and not is_message_id(after_id):
            return Err(ErrorCode.INVALID_INPUT)

        try:
            if not self.store.is_member(room_id, viewer_id):
                return Err(ErrorCode.NOT_A_MEMBER)

            if after_id is not None:
                items, has_more = self.store.find_messages(
                    room_id=room_id,
                    viewer_id=viewer_id,
                    after_id=after_id,
                    limit=self.fetch_limit,
                )
            else:
                limit = pagination.limit if pagination else self.initial_limit
                offset = pagination.offset if pagination else 0
                items, has_more = self.store.find_messages(
                    room_id=room_id,
                    viewer_id=viewer_id,
                    after_id=None,
                    limit=limit,
                    offset=offset,
                )
        except sqlite3.Error:
            logger.exception(
                "fetch messages failed: room_id=%s viewer_id=%s after_id=%r",
                room_id,
                viewer_id,
                after_id,
            )
            return Err(ErrorCode.INTERNAL_ERROR)

        return Ok(FetchPage(items=tuple(items), has_more=has_more))

    def fetch_rooms(
        self,
        viewer_id: str,
        *,
        search: str | None = None,
        pagination: Pagination | None = None,
    ) -> Result[tuple[Room, ...], ErrorCode]:
        """viewer 所在房间的快照，按创建时间倒序。"""
        limit = pagination.limit if pagination else self.initial_limit
        offset = pagination.offset if pagination else 0
        try:
            rooms = self.store.list_rooms_for_user(
                viewer_id,
                search=(search or "").strip() or None,
                limit=limit,
                offset=offset,
            )
        except sqlite3.Error:
            logger.exception("fetch rooms failed: viewer_id=%s search=%r", viewer_id, search)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(tuple(rooms))

    def fetch_bookmarks(
        self,
        viewer_id: str,
        *,
        pagination: Pagination | None = None,
    ) -> Result[tuple[Bookmark, ...], ErrorCode]:
        limit = pagination.limit if pagination else BOOKMARK_FETCH_LIMIT
        offset = pagination.offset if pagination else 0
        try:
            bookmarks = self.store.list_bookmarks(viewer_id, limit=limit, offset=offset)
        except sqlite3.Error:
            logger.exception("fetch bookmarks failed: viewer_id=%s", viewer_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(tuple(bookmarks))
