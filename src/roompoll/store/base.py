from __future__ import annotations

from typing import Protocol

from ..models import Bookmark, Message, Room


class MessageStore(Protocol):
    """
    消息存储接口：
    - rooms / room_members：房间与成员关系
    - messages：按 id 全序的消息日志（软删除，不物理删除）
    - reactions / bookmarks：按 (message_id, user_id) 唯一
    """

    def ensure_schema(self) -> None: ...

    def ensure_user(self, user_id: str, nickname: str | None = None) -> None: ...

    def create_room(
        self, *, name: str, created_by: str, description: str | None = None, is_public: bool = True
    ) -> Room: ...

    def get_room(self, room_id: str) -> Room | None: ...

    def add_member(self, room_id: str, user_id: str) -> bool: ...

    def remove_member(self, room_id: str, user_id: str) -> bool: ...

    def is_member(self, room_id: str, user_id: str) -> bool: ...

    def list_rooms_for_user(
        self, user_id: str, *, search: str | None, limit: int, offset: int
    ) -> list[Room]: ...

    def insert_message(self, *, room_id: str, author_id: str, content: str) -> Message: ...

    def get_message(self, message_id: str) -> Message | None: ...

    def soft_delete_message(self, message_id: str) -> None: ...

    def find_messages(
        self,
        *,
        room_id: str,
        viewer_id: str,
        after_id: str | None,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[Message], bool]: ...

    def has_reaction(self, message_id: str, user_id: str) -> bool: ...

    def add_reaction(self, message_id: str, user_id: str) -> None: ...

    def remove_reaction(self, message_id: str, user_id: str) -> None: ...

    def count_reactions(self, message_id: str) -> int: ...

    def has_bookmark(self, message_id: str, user_id: str) -> bool: ...

    def add_bookmark(self, message_id: str, user_id: str) -> str: ...

    def remove_bookmark(self, message_id: str, user_id: str) -> None: ...

    def remove_bookmark_by_id(self, bookmark_id: str, user_id: str) -> bool: ...

    def list_bookmarks(self, user_id: str, *, limit: int, offset: int) -> list[Bookmark]: ...
