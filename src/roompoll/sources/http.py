from __future__ import annotations

import asyncio
import logging
import urllib.error
import urllib.parse
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from ..http_utils import HttpClient, with_query_params
from ..models import Bookmark, FetchPage, Message, Room, Session, is_message_id
from ..result import Err, ErrorCode, Ok, Result


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_code(body: Any) -> ErrorCode:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return ErrorCode.parse(body["error"].get("code"))
    return ErrorCode.INTERNAL_ERROR


def _parse_page(data: Any) -> FetchPage:
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise ValueError(f"expected {{items, hasMore}} object, got {type(data)}")
    items = tuple(Message.from_json_dict(it) for it in data["items"] if isinstance(it, dict))
    for m in items:
        # cursor 与客户端排序都依赖十进制自增 id
        if not is_message_id(m.id):
            raise ValueError(f"message id is not a decimal sequence number: {m.id!r}")
    return FetchPage(items=items, has_more=bool(data.get("hasMore", False)))


def _parse_rooms(data: Any) -> tuple[Room, ...]:
    if isinstance(data, dict):
        data = data.get("items", data.get("rooms"))
    if not isinstance(data, list):
        raise ValueError(f"expected room list, got {type(data)}")
    return tuple(Room.from_json_dict(it) for it in data if isinstance(it, dict))


def _parse_bookmarks(data: Any) -> tuple[Bookmark, ...]:
    if isinstance(data, dict):
        data = data.get("items", data.get("bookmarks"))
    if not isinstance(data, list):
        raise ValueError(f"expected bookmark list, got {type(data)}")
    return tuple(Bookmark.from_json_dict(it) for it in data if isinstance(it, dict))


@dataclass(slots=True)
class HttpMessageSource:
    """
    通过聊天 HTTP API 拉取消息。

    响应约定：
    - 成功：{"success": true, "data": {...}}
    - 失败：{"success": false, "error": {"code": "...", "message": "..."}}
    连接失败、超时、响应体无法解析都归为 NETWORK_ERROR；未知错误码归为 INTERNAL_ERROR。
    """

    base_url: str
    session: Session
    http: HttpClient

    def key(self) -> str:
        return f"http:{self.base_url}:{self.session.user_id}"

    def _url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    async def fetch_messages(self, room_id: str, after_id: str | None = None) -> Result[FetchPage, ErrorCode]:
        url = self._url(f"/api/rooms/{urllib.parse.quote(room_id, safe='')}/messages")
        if after_id is not None:
            url = with_query_params(url, {"after": after_id})
        return await asyncio.to_thread(self._get, url, _parse_page)

    async def fetch_rooms(self, search: str | None = None) -> Result[tuple[Room, ...], ErrorCode]:
        url = with_query_params(self._url("/api/rooms"), {"search": search or None})
        return await asyncio.to_thread(self._get, url, _parse_rooms)

    async def fetch_bookmarks(self) -> Result[tuple[Bookmark, ...], ErrorCode]:
        return await asyncio.to_thread(self._get, self._url("/api/bookmarks"), _parse_bookmarks)

    def _get(self, url: str, parse: Callable[[Any], T]) -> Result[T, ErrorCode]:
        try:
            resp = self.http.get(url, headers=self.session.auth_headers())
            body = resp.json()
        except (urllib.error.URLError, TimeoutError, ConnectionError, ValueError) as e:
            logger.warning("request failed: url=%s error=%s: %s", url, type(e).__name__, e)
            return Err(ErrorCode.NETWORK_ERROR)

        if not resp.ok or not isinstance(body, dict) or not body.get("success"):
            code = _error_code(body)
            logger.debug("request rejected: url=%s status=%d code=%s", url, resp.status, code)
            return Err(code)

        try:
            return Ok(parse(body.get("data")))
        except (KeyError, TypeError, ValueError):
            logger.exception("unexpected response shape: url=%s", url)
            return Err(ErrorCode.INTERNAL_ERROR)
