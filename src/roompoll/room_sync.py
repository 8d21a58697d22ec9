from __future__ import annotations

import asyncio
import bisect
import dataclasses
import logging
from typing import Any, Callable

from .constants import POLLING_INTERVAL_MS, POLLING_MAX_RETRIES
from .models import FetchPage, Message, message_id_key
from .poller import PollingEngine, PollState, Sleep
from .result import ErrorCode, Result
from .sources.base import MessageSource


logger = logging.getLogger(__name__)


def _key(message: Message) -> int:
    return message_id_key(message.id)


class MessageState:
    """
    单个房间的客户端消息状态：按 id 升序的消息列表 + cursor。

    所有修改都是同步方法，在单线程事件循环里彼此不会交错，
    因此轮询合并与本地写入（发送/删除/点赞/书签）之间不会丢更新。
    本地删除的 id 记在 _deleted 中：删除前已发出的拉取晚到时不会把它带回来。
    """

    def __init__(self) -> None:
        self._items: list[Message] = []
        self._ids: set[str] = set()
        self._deleted: set[str] = set()
        self.cursor: str | None = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[Message, ...]:
        return tuple(self._items)

    def get(self, message_id: str) -> Message | None:
        for m in self._items:
            if m.id == message_id:
                return m
        return None

    def load(self, page: FetchPage) -> list[Message]:
        """
        应用首次（无 cursor）加载的结果。

        加载前用 insert_local 插入的本地消息保留，与首页按 id 合并；cursor 取首页最后一条。
        """
        self.cursor = None
        return self.merge(page)

    def merge(self, page: FetchPage) -> list[Message]:
        """
        追加 page 中尚未出现的消息，返回真正新增的部分。

        cursor 前移到 page 的最后一条；空 page 不改变 cursor。
        已存在或已在本地删除的 id 直接跳过，所以重叠拉取或本地先插入的消息不会重复。
        """
        added: list[Message] = []
        for message in page.items:
            if message.id in self._ids or message.id in self._deleted:
                continue
            bisect.insort(self._items, message, key=_key)
            self._ids.add(message.id)
            added.append(message)

        last_id = page.last_id
        if last_id is not None and (self.cursor is None or message_id_key(last_id) > message_id_key(self.cursor)):
            self.cursor = last_id
        return added

    def insert_local(self, message: Message) -> bool:
        """
        插入本地刚发送的消息。cursor 不前移：
        id 更小但尚未拉到的他人消息仍会在下一次轮询中取回。
        """
        if message.id in self._ids or message.id in self._deleted:
            return False
        bisect.insort(self._items, message, key=_key)
        self._ids.add(message.id)
        return True

    def remove(self, message_id: str) -> bool:
        self._deleted.add(message_id)
        if message_id not in self._ids:
            return False
        self._items = [m for m in self._items if m.id != message_id]
        self._ids.discard(message_id)
        return True

    def update(self, message_id: str, **changes: Any) -> bool:
        for i, m in enumerate(self._items):
            if m.id == message_id:
                self._items[i] = dataclasses.replace(m, **changes)
                return True
        return False

    def clear(self) -> None:
        self._items = []
        self._ids = set()
        self._deleted = set()
        self.cursor = None


class RoomSync:
    """
    单个房间的消息同步：在 PollingEngine 之上维护 cursor 与消息列表。

    - enable 后第一次成功的拉取不带 cursor，结果作为首页载入（保留此前本地发送的消息）
    - 之后每次拉取都带上当前 cursor（房间为空时 cursor 仍为 None），结果按 id 去重追加
    - disable / switch_room 会清空 cursor 与消息
    """

    def __init__(
        self,
        source: MessageSource,
        room_id: str,
        *,
        interval: int = POLLING_INTERVAL_MS,
        max_retries: int = POLLING_MAX_RETRIES,
        on_messages: Callable[[list[Message]], None] | None = None,
        on_error: Callable[[Any], None] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.source = source
        self.room_id = room_id
        self.state = MessageState()
        self._loaded = False
        self._on_messages = on_messages
        self.engine: PollingEngine[FetchPage] = PollingEngine(
            self._fetch,
            interval=interval,
            max_retries=max_retries,
            on_success=self._apply,
            on_error=on_error,
            sleep=sleep,
            name=f"room:{room_id}",
        )

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.state.items

    @property
    def cursor(self) -> str | None:
        return self.state.cursor

    @property
    def error(self) -> Any | None:
        return self.engine.error

    @property
    def is_loading(self) -> bool:
        return self.engine.is_loading

    @property
    def status(self) -> PollState:
        return self.engine.state

    def enable(self) -> None:
        self.engine.enable()

    def disable(self) -> None:
        self.engine.disable()
        self.state.clear()
        self._loaded = False

    async def refresh(self) -> None:
        await self.engine.refresh()

    async def aclose(self) -> None:
        await self.engine.aclose()
        self.state.clear()
        self._loaded = False

    def switch_room(self, room_id: str) -> None:
        was_enabled = self.engine.enabled
        self.disable()
        self.room_id = room_id
        self.engine.name = f"room:{room_id}"
        if was_enabled:
            self.enable()

    async def _fetch(self) -> Result[FetchPage, ErrorCode]:
        after_id = self.state.cursor if self._loaded else None
        return await self.source.fetch_messages(self.room_id, after_id)

    def _apply(self, page: FetchPage) -> None:
        if self._loaded:
            added = self.state.merge(page)
        else:
            added = self.state.load(page)
            self._loaded = True
        if added:
            logger.debug(
                "messages merged: room_id=%s added=%d cursor=%s",
                self.room_id,
                len(added),
                self.state.cursor,
            )
            if self._on_messages is not None:
                self._on_messages(added)

    def apply_sent(self, message: Message) -> None:
        if message.room_id == self.room_id:
            self.state.insert_local(message)

    def apply_deleted(self, message_id: str) -> None:
        self.state.remove(message_id)

    def apply_reaction(self, message_id: str, has_reacted: bool, reaction_count: int) -> None:
        self.state.update(message_id, has_reacted=has_reacted, reaction_count=reaction_count)

    def apply_bookmark(self, message_id: str, has_bookmarked: bool) -> None:
        self.state.update(message_id, has_bookmarked=has_bookmarked)
