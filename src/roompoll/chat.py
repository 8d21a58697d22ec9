from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from .constants import MAX_MESSAGE_LENGTH, MAX_ROOM_NAME_LENGTH
from .models import Message, Room, is_message_id
from .result import Err, ErrorCode, Ok, Result
from .store.base import MessageStore


logger = logging.getLogger(__name__)


def validate_message_content(content: str) -> Result[str, ErrorCode]:
    text = (content or "").strip()
    if not text:
        return Err(ErrorCode.EMPTY_MESSAGE)
    if len(text) > MAX_MESSAGE_LENGTH:
        return Err(ErrorCode.MESSAGE_TOO_LONG)
    return Ok(text)


def validate_room_name(name: str) -> Result[str, ErrorCode]:
    text = (name or "").strip()
    if not text or len(text) > MAX_ROOM_NAME_LENGTH:
        return Err(ErrorCode.INVALID_INPUT)
    return Ok(text)


@dataclass(slots=True)
class ChatService:
    """
    聊天写操作：发送 / 软删除 / 点赞切换 / 书签切换，以及房间的创建、加入、退出。

    与 MessageFeed 相同，预期内的失败以 Err 返回；数据源异常归为 INTERNAL_ERROR。
    """

    store: MessageStore

    def send_message(self, room_id: str, user_id: str, content: str) -> Result[Message, ErrorCode]:
        checked = validate_message_content(content)
        if isinstance(checked, Err):
            return checked
        try:
            if not self.store.is_member(room_id, user_id):
                return Err(ErrorCode.NOT_A_MEMBER)
            message = self.store.insert_message(room_id=room_id, author_id=user_id, content=checked.data)
        except sqlite3.Error:
            logger.exception("send message failed: room_id=%s user_id=%s", room_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        logger.debug("message sent: room_id=%s message_id=%s", room_id, message.id)
        return Ok(message)

    def delete_message(self, message_id: str, user_id: str) -> Result[None, ErrorCode]:
        if not is_message_id(message_id):
            return Err(ErrorCode.MESSAGE_NOT_FOUND)
        try:
            message = self.store.get_message(message_id)
            if message is None or message.is_deleted:
                return Err(ErrorCode.MESSAGE_NOT_FOUND)
            if message.author_id != user_id:
                return Err(ErrorCode.NOT_MESSAGE_OWNER)
            self.store.soft_delete_message(message_id)
        except sqlite3.Error:
            logger.exception("delete message failed: message_id=%s user_id=%s", message_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(None)

    def toggle_reaction(self, message_id: str, user_id: str) -> Result[tuple[bool, int], ErrorCode]:
        """
        点赞切换：已点赞则取消，否则添加。返回 (has_reacted, 最新点赞数)。
        """
        if not is_message_id(message_id):
            return Err(ErrorCode.MESSAGE_NOT_FOUND)
        try:
            message = self.store.get_message(message_id)
            if message is None or message.is_deleted:
                return Err(ErrorCode.MESSAGE_NOT_FOUND)
            if self.store.has_reaction(message_id, user_id):
                self.store.remove_reaction(message_id, user_id)
                has_reacted = False
            else:
                self.store.add_reaction(message_id, user_id)
                has_reacted = True
            count = self.store.count_reactions(message_id)
        except sqlite3.Error:
            logger.exception("toggle reaction failed: message_id=%s user_id=%s", message_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok((has_reacted, count))

    def toggle_bookmark(self, message_id: str, user_id: str) -> Result[bool, ErrorCode]:
        if not is_message_id(message_id):
            return Err(ErrorCode.MESSAGE_NOT_FOUND)
        try:
            if self.store.get_message(message_id) is None:
                return Err(ErrorCode.MESSAGE_NOT_FOUND)
            if self.store.has_bookmark(message_id, user_id):
                self.store.remove_bookmark(message_id, user_id)
                return Ok(False)
            self.store.add_bookmark(message_id, user_id)
        except sqlite3.Error:
            logger.exception("toggle bookmark failed: message_id=%s user_id=%s", message_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(True)

    def remove_bookmark(self, bookmark_id: str, user_id: str) -> Result[None, ErrorCode]:
        try:
            self.store.remove_bookmark_by_id(bookmark_id, user_id)
        except sqlite3.Error:
            logger.exception("remove bookmark failed: bookmark_id=%s user_id=%s", bookmark_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(None)

    def create_room(
        self,
        name: str,
        created_by: str,
        *,
        description: str | None = None,
        is_public: bool = True,
    ) -> Result[Room, ErrorCode]:
        checked = validate_room_name(name)
        if isinstance(checked, Err):
            return checked
        try:
            room = self.store.create_room(
                name=checked.data,
                created_by=created_by,
                description=description,
                is_public=is_public,
            )
            self.store.add_member(room.id, created_by)
            room = self.store.get_room(room.id) or room
        except sqlite3.Error:
            logger.exception("create room failed: name=%r created_by=%s", name, created_by)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(room)

    def join_room(self, room_id: str, user_id: str) -> Result[None, ErrorCode]:
        try:
            if self.store.get_room(room_id) is None:
                return Err(ErrorCode.ROOM_NOT_FOUND)
            if not self.store.add_member(room_id, user_id):
                return Err(ErrorCode.ALREADY_MEMBER)
        except sqlite3.Error:
            logger.exception("join room failed: room_id=%s user_id=%s", room_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(None)

    def leave_room(self, room_id: str, user_id: str) -> Result[None, ErrorCode]:
        try:
            if not self.store.remove_member(room_id, user_id):
                return Err(ErrorCode.NOT_A_MEMBER)
        except sqlite3.Error:
            logger.exception("leave room failed: room_id=%s user_id=%s", room_id, user_id)
            return Err(ErrorCode.INTERNAL_ERROR)
        return Ok(None)
