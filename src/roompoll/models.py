from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Mapping


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_rfc3339_datetime(value: str) -> datetime:
    """
    解析常见的 RFC3339/ISO8601 时间串为带 tzinfo 的 datetime。

    兼容：
    - 2026-02-10T12:34:56Z
    - 2026-02-10T12:34:56+00:00
    - 2026-02-10T12:34:56.123Z
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def _parse_optional_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return parse_rfc3339_datetime(value)
    return None


def message_id_key(message_id: str) -> int:
    """
    消息 id 的全序键。

    id 由服务端单调递增分配，以十进制字符串对外暴露；
    cursor 比较只看 id，不看 created_at（避免时钟漂移）。
    """
    return int(message_id)


def is_message_id(value: str) -> bool:
    """只接受 ASCII 十进制数字串（str.isdigit 会放过 "²" 之类的 Unicode 数字）。"""
    return value.isascii() and value.isdigit()


@dataclass(frozen=True, slots=True)
class Message:
    """
    有序消息日志中的一条记录。

    - deleted_at 为软删除墓碑：行永不物理删除，保证 cursor 始终有效
    - reaction_count / has_reacted / has_bookmarked 是针对某个 viewer 计算的派生字段
    """

    id: str
    room_id: str
    author_id: str
    content: str
    created_at: datetime
    deleted_at: datetime | None = None
    author_nickname: str | None = None
    reaction_count: int = 0
    has_reacted: bool = False
    has_bookmarked: bool = False

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_json_dict(self) -> dict[str, Any]:
        """
        序列化为聊天 API 的 JSON 形状（camelCase 字段，datetime 使用 ISO8601）。
        """
        return {
            "id": self.id,
            "roomId": self.room_id,
            "userId": self.author_id,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
            "deletedAt": self.deleted_at.isoformat() if self.deleted_at else None,
            "author": {"id": self.author_id, "nickname": self.author_nickname},
            "reactionCount": self.reaction_count,
            "hasReacted": self.has_reacted,
            "hasBookmarked": self.has_bookmarked,
        }

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> Message:
        created_at = _parse_optional_datetime(data.get("createdAt"))
        if created_at is None:
            raise ValueError(f"message without createdAt: {data.get('id')!r}")
        author = data.get("author")
        nickname = author.get("nickname") if isinstance(author, dict) else None
        return cls(
            id=str(data["id"]),
            room_id=str(data.get("roomId") or ""),
            author_id=str(data.get("userId") or ""),
            content=str(data.get("content") or ""),
            created_at=created_at,
            deleted_at=_parse_optional_datetime(data.get("deletedAt")),
            author_nickname=str(nickname) if nickname is not None else None,
            reaction_count=max(0, int(data.get("reactionCount") or 0)),
            has_reacted=bool(data.get("hasReacted", False)),
            has_bookmarked=bool(data.get("hasBookmarked", False)),
        )


@dataclass(frozen=True, slots=True)
class Room:
    id: str
    name: str
    description: str | None
    is_public: bool
    created_by: str
    created_at: datetime
    member_count: int = 0

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> Room:
        created_at = _parse_optional_datetime(data.get("createdAt"))
        if created_at is None:
            raise ValueError(f"room without createdAt: {data.get('id')!r}")
        description = data.get("description")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=str(description) if description is not None else None,
            is_public=bool(data.get("isPublic", True)),
            created_by=str(data.get("createdBy") or ""),
            created_at=created_at,
            member_count=int(data.get("memberCount") or 0),
        )


@dataclass(frozen=True, slots=True)
class Bookmark:
    """
    书签：携带被收藏消息的摘要以及所在房间，便于书签列表直接渲染。
    """

    id: str
    message_id: str
    user_id: str
    created_at: datetime
    message_content: str
    message_created_at: datetime
    message_deleted_at: datetime | None
    room_id: str
    room_name: str

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> Bookmark:
        message = data.get("message")
        if not isinstance(message, dict):
            raise ValueError(f"bookmark without message: {data.get('id')!r}")
        room = message.get("room") if isinstance(message.get("room"), dict) else {}
        created_at = _parse_optional_datetime(data.get("createdAt"))
        message_created_at = _parse_optional_datetime(message.get("createdAt"))
        if created_at is None or message_created_at is None:
            raise ValueError(f"bookmark without createdAt: {data.get('id')!r}")
        return cls(
            id=str(data["id"]),
            message_id=str(data.get("messageId") or message.get("id") or ""),
            user_id=str(data.get("userId") or ""),
            created_at=created_at,
            message_content=str(message.get("content") or ""),
            message_created_at=message_created_at,
            message_deleted_at=_parse_optional_datetime(message.get("deletedAt")),
            room_id=str(room.get("id") or ""),
            room_name=str(room.get("name") or ""),
        )


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int
    limit: int

    def __post_init__(self) -> None:
        if self.page < 1 or self.limit < 1:
            raise ValueError(f"invalid pagination: page={self.page} limit={self.limit}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True, slots=True)
class FetchPage:
    """
    增量拉取结果。

    has_more 只在无 cursor（分页）读取时有意义；带 cursor 的读取恒为 False。
    """

    items: tuple[Message, ...]
    has_more: bool = False

    @property
    def last_id(self) -> str | None:
        return self.items[-1].id if self.items else None


@dataclass(frozen=True, slots=True)
class Session:
    """
    显式会话对象：按引用传给每个会发请求的组件，不存在进程级全局 token。
    """

    user_id: str
    access_token: str

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}
