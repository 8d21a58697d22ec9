from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from ..models import Bookmark, Message, Room, message_id_key, parse_rfc3339_datetime


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _dt(value: str | None) -> datetime | None:
    return parse_rfc3339_datetime(value) if value else None


_MESSAGE_COLUMNS = """
    m.id AS id,
    m.room_id AS room_id,
    m.author_id AS author_id,
    m.content AS content,
    m.created_at AS created_at,
    m.deleted_at AS deleted_at,
    u.nickname AS author_nickname,
    (SELECT COUNT(*) FROM reactions r WHERE r.message_id = m.id) AS reaction_count,
    EXISTS(SELECT 1 FROM reactions r WHERE r.message_id = m.id AND r.user_id = :viewer_id) AS has_reacted,
    EXISTS(SELECT 1 FROM bookmarks b WHERE b.message_id = m.id AND b.user_id = :viewer_id) AS has_bookmarked
"""


def _row_to_message(row: sqlite3.Row) -> Message:
    keys = row.keys()
    return Message(
        id=str(row["id"]),
        room_id=row["room_id"],
        author_id=row["author_id"],
        content=row["content"],
        created_at=parse_rfc3339_datetime(row["created_at"]),
        deleted_at=_dt(row["deleted_at"]),
        author_nickname=row["author_nickname"] if "author_nickname" in keys else None,
        reaction_count=int(row["reaction_count"]) if "reaction_count" in keys else 0,
        has_reacted=bool(row["has_reacted"]) if "has_reacted" in keys else False,
        has_bookmarked=bool(row["has_bookmarked"]) if "has_bookmarked" in keys else False,
    )


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        is_public=bool(row["is_public"]),
        created_by=row["created_by"],
        created_at=parse_rfc3339_datetime(row["created_at"]),
        member_count=int(row["member_count"]),
    )


@dataclass(slots=True)
class SqliteMessageStore:
    """
    默认消息存储：SQLite

    表设计：
    - users：作者昵称
    - rooms / room_members：房间与成员
    - messages：INTEGER 自增主键即消息 id（单调递增，cursor 依赖它）；deleted_at 为软删除墓碑
    - reactions / bookmarks：每个用户对每条消息至多一条
    """

    sqlite_path: str

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.sqlite_path)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    nickname TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS rooms (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    is_public INTEGER NOT NULL,
                    created_by TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS room_members (
                    room_id TEXT NOT NULL REFERENCES rooms(id),
                    user_id TEXT NOT NULL,
                    joined_at TEXT NOT NULL,
                    PRIMARY KEY (room_id, user_id)
                );
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    room_id TEXT NOT NULL REFERENCES rooms(id),
                    author_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    deleted_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_messages_room_id ON messages(room_id, id);
                CREATE TABLE IF NOT EXISTS reactions (
                    message_id INTEGER NOT NULL REFERENCES messages(id),
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (message_id, user_id)
                );
                CREATE TABLE IF NOT EXISTS bookmarks (
                    id TEXT PRIMARY KEY,
                    message_id INTEGER NOT NULL REFERENCES messages(id),
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (message_id, user_id)
                );
                """
            )

    def ensure_user(self, user_id: str, nickname: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users(id, nickname, created_at)
                VALUES(?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    nickname=COALESCE(excluded.nickname, users.nickname)
                """,
                (user_id, nickname, _utc_now_iso()),
            )

    def create_room(
        self, *, name: str, created_by: str, description: str | None = None, is_public: bool = True
    ) -> Room:
        room_id = uuid.uuid4().hex
        created_at = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO rooms(id, name, description, is_public, created_by, created_at)
                VALUES(?, ?, ?, ?, ?, ?)
                """,
                (room_id, name, description, int(is_public), created_by, created_at),
            )
        room = self.get_room(room_id)
        assert room is not None
        return room

    def get_room(self, room_id: str) -> Room | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT rooms.*,
                    (SELECT COUNT(*) FROM room_members rm WHERE rm.room_id = rooms.id) AS member_count
                FROM rooms WHERE id = ?
                """,
                (room_id,),
            ).fetchone()
            return _row_to_room(row) if row else None

    def add_member(self, room_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO room_members(room_id, user_id, joined_at)
                VALUES(?, ?, ?)
                """,
                (room_id, user_id, _utc_now_iso()),
            )
            return cur.rowcount > 0

    def remove_member(self, room_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM room_members WHERE room_id = ? AND user_id = ?",
                (room_id, user_id),
            )
            return cur.rowcount > 0

    def is_member(self, room_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM room_members WHERE room_id = ? AND user_id = ? LIMIT 1",
                (room_id, user_id),
            ).fetchone()
            return row is not None

    def list_rooms_for_user(
        self, user_id: str, *, search: str | None, limit: int, offset: int
    ) -> list[Room]:
        sql = """
            SELECT rooms.*,
                (SELECT COUNT(*) FROM room_members rm WHERE rm.room_id = rooms.id) AS member_count
            FROM rooms
            JOIN room_members me ON me.room_id = rooms.id AND me.user_id = :user_id
        """
        params: dict[str, object] = {"user_id": user_id, "limit": limit, "offset": offset}
        if search:
            sql += " WHERE rooms.name LIKE :pattern"
            params["pattern"] = f"%{search}%"
        sql += " ORDER BY rooms.created_at DESC, rooms.rowid DESC LIMIT :limit OFFSET :offset"
        with self._connect() as conn:
            return [_row_to_room(row) for row in conn.execute(sql, params).fetchall()]

    def insert_message(self, *, room_id: str, author_id: str, content: str) -> Message:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO messages(room_id, author_id, content, created_at)
                VALUES(?, ?, ?, ?)
                """,
                (room_id, author_id, content, _utc_now_iso()),
            )
            message_id = cur.lastrowid
            row = conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages m LEFT JOIN users u ON u.id = m.author_id WHERE m.id = :id",
                {"id": message_id, "viewer_id": author_id},
            ).fetchone()
            return _row_to_message(row)

    def get_message(self, message_id: str) -> Message | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages m WHERE m.id = ?",
                (message_id_key(message_id),),
            ).fetchone()
            return _row_to_message(row) if row else None

    def soft_delete_message(self, message_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE messages SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (_utc_now_iso(), message_id_key(message_id)),
            )

    def find_messages(
        self,
        *,
        room_id: str,
        viewer_id: str,
        after_id: str | None,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[Message], bool]:
        """
        读取房间内未删除的消息（升序）。

        - after_id 存在：返回 id > after_id 的消息，最多 limit 条；has_more 恒为 False
        - after_id 缺省：按 id 倒序取第 offset/limit 页（第 1 页为最新），再翻转为升序；
          has_more 表示更早的消息是否还有剩余
        """
        base = f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages m
            LEFT JOIN users u ON u.id = m.author_id
            WHERE m.room_id = :room_id AND m.deleted_at IS NULL
        """
        params: dict[str, object] = {"room_id": room_id, "viewer_id": viewer_id, "limit": limit}
        with self._connect() as conn:
            if after_id is not None:
                params["after_id"] = message_id_key(after_id)
                rows = conn.execute(
                    base + " AND m.id > :after_id ORDER BY m.id ASC LIMIT :limit",
                    params,
                ).fetchall()
                return [_row_to_message(r) for r in rows], False

            params["limit"] = limit + 1
            params["offset"] = offset
            rows = conn.execute(
                base + " ORDER BY m.id DESC LIMIT :limit OFFSET :offset",
                params,
            ).fetchall()
        has_more = len(rows) > limit
        rows = rows[:limit]
        rows.reverse()
        return [_row_to_message(r) for r in rows], has_more

    def has_reaction(self, message_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM reactions WHERE message_id = ? AND user_id = ? LIMIT 1",
                (message_id_key(message_id), user_id),
            ).fetchone()
            return row is not None

    def add_reaction(self, message_id: str, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO reactions(message_id, user_id, created_at) VALUES(?, ?, ?)",
                (message_id_key(message_id), user_id, _utc_now_iso()),
            )

    def remove_reaction(self, message_id: str, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM reactions WHERE message_id = ? AND user_id = ?",
                (message_id_key(message_id), user_id),
            )

    def count_reactions(self, message_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM reactions WHERE message_id = ?",
                (message_id_key(message_id),),
            ).fetchone()
            return int(row["n"])

    def has_bookmark(self, message_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM bookmarks WHERE message_id = ? AND user_id = ? LIMIT 1",
                (message_id_key(message_id), user_id),
            ).fetchone()
            return row is not None

    def add_bookmark(self, message_id: str, user_id: str) -> str:
        bookmark_id = uuid.uuid4().hex
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO bookmarks(id, message_id, user_id, created_at) VALUES(?, ?, ?, ?)",
                (bookmark_id, message_id_key(message_id), user_id, _utc_now_iso()),
            )
            row = conn.execute(
                "SELECT id FROM bookmarks WHERE message_id = ? AND user_id = ?",
                (message_id_key(message_id), user_id),
            ).fetchone()
            return row["id"]

    def remove_bookmark(self, message_id: str, user_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM bookmarks WHERE message_id = ? AND user_id = ?",
                (message_id_key(message_id), user_id),
            )

    def remove_bookmark_by_id(self, bookmark_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM bookmarks WHERE id = ? AND user_id = ?",
                (bookmark_id, user_id),
            )
            return cur.rowcount > 0

    def list_bookmarks(self, user_id: str, *, limit: int, offset: int) -> list[Bookmark]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT b.id AS id, b.message_id AS message_id, b.user_id AS user_id,
                    b.created_at AS created_at,
                    m.content AS message_content, m.created_at AS message_created_at,
                    m.deleted_at AS message_deleted_at,
                    r.id AS room_id, r.name AS room_name
                FROM bookmarks b
                JOIN messages m ON m.id = b.message_id
                JOIN rooms r ON r.id = m.room_id
                WHERE b.user_id = ?
                ORDER BY b.created_at DESC, b.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            ).fetchall()
        return [
            Bookmark(
                id=row["id"],
                message_id=str(row["message_id"]),
                user_id=row["user_id"],
                created_at=parse_rfc3339_datetime(row["created_at"]),
                message_content=row["message_content"],
                message_created_at=parse_rfc3339_datetime(row["message_created_at"]),
                message_deleted_at=_dt(row["message_deleted_at"]),
                room_id=row["room_id"],
                room_name=row["room_name"],
            )
            for row in rows
        ]
