from datetime import UTC, datetime

import pytest

from roompoll.models import (
    Bookmark,
    FetchPage,
    Message,
    Pagination,
    Room,
    is_message_id,
    message_id_key,
    parse_rfc3339_datetime,
)


T = datetime(2026, 2, 10, 0, 0, tzinfo=UTC)


def test_message_json_round_trip_keeps_viewer_fields() -> None:
    """
    to_json_dict 使用聊天 API 的 camelCase 形状；viewer 相关派生字段也要带上。
    """
    m = Message(
        id="12",
        room_id="r1",
        author_id="u1",
        content="hello",
        created_at=T,
        author_nickname="alice",
        reaction_count=3,
        has_reacted=True,
    )
    data = m.to_json_dict()
    assert data["roomId"] == "r1"
    assert data["author"] == {"id": "u1", "nickname": "alice"}
    assert data["deletedAt"] is None
    assert Message.from_json_dict(data) == m


def test_message_from_api_payload() -> None:
    m = Message.from_json_dict(
        {
            "id": 7,
            "roomId": "r1",
            "userId": "u2",
            "content": "hey",
            "createdAt": "2026-02-10T00:00:00.123Z",
            "deletedAt": None,
            "reactionCount": -1,
        }
    )
    assert m.id == "7"
    assert m.created_at.tzinfo is not None
    assert m.reaction_count == 0
    assert not m.is_deleted
    assert m.author_nickname is None


def test_message_without_created_at_is_rejected() -> None:
    with pytest.raises(ValueError):
        Message.from_json_dict({"id": "1", "roomId": "r1"})


def test_room_and_bookmark_from_api_payload() -> None:
    room = Room.from_json_dict(
        {"id": "r1", "name": "general", "isPublic": False, "createdBy": "u1", "createdAt": "2026-02-10T00:00:00Z", "memberCount": 2}
    )
    assert not room.is_public
    assert room.member_count == 2

    bm = Bookmark.from_json_dict(
        {
            "id": "b1",
            "userId": "u1",
            "createdAt": "2026-02-10T00:00:01Z",
            "message": {
                "id": "12",
                "content": "saved",
                "createdAt": "2026-02-10T00:00:00Z",
                "room": {"id": "r1", "name": "general"},
            },
        }
    )
    assert bm.message_id == "12"
    assert bm.room_name == "general"
    assert bm.message_deleted_at is None


def test_ids_compare_numerically() -> None:
    # 字符串比较时 "10" < "9"；cursor 比较必须按数值
    assert message_id_key("10") > message_id_key("9")


def test_fetch_page_last_id_and_pagination() -> None:
    assert FetchPage(items=()).last_id is None
    page = FetchPage(items=(Message(id="3", room_id="r", author_id="u", content="x", created_at=T),))
    assert page.last_id == "3"

    assert Pagination(page=3, limit=20).offset == 40
    with pytest.raises(ValueError):
        Pagination(page=0, limit=20)


def test_parse_naive_datetime_assumes_utc() -> None:
    assert parse_rfc3339_datetime("2026-02-10T00:00:00") == T


def test_is_message_id_accepts_ascii_decimal_only() -> None:
    assert is_message_id("42")
    assert not is_message_id("")
    assert not is_message_id("²")
    assert not is_message_id("-1")
    assert not is_message_id("6f1c9e2a-0b3d-4c3e-9a51-7f2d8c1e0a44")
