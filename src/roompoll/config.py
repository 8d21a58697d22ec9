from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .constants import INITIAL_MESSAGE_LIMIT, MESSAGE_FETCH_LIMIT, POLLING_INTERVAL_MS, POLLING_MAX_RETRIES
from .feed import MessageFeed
from .http_utils import HttpClient
from .models import Session
from .sources.base import MessageSource
from .sources.http import HttpMessageSource
from .sources.local import LocalMessageSource
from .store.sqlite_store import SqliteMessageStore


def _require_dict(value: Any, *, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"Expected object at {where}, got {type(value)}")
    return value


def _get_int(d: Mapping[str, Any], key: str, default: int) -> int:
    v = d.get(key, default)
    if isinstance(v, bool):
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _get_str(d: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    v = d.get(key, default)
    if v is None:
        return None
    return str(v)


def _get_str_list(d: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    v = d.get(key, default)
    if v is None:
        return list(default)
    if isinstance(v, list):
        return [str(x) for x in v]
    return list(default)


@dataclass(frozen=True, slots=True)
class SqliteSourceConfig:
    """
    本地 SQLite 数据源：直接读取消息库（开发 / 单机场景）。
    """

    sqlite_path: str


@dataclass(frozen=True, slots=True)
class HttpSourceConfig:
    """
    聊天 HTTP API 数据源。

    token_env:
      - access token 的环境变量名；token 只从环境变量读取，避免落盘
    """

    base_url: str
    token_env: str
    timeout_seconds: int = 10


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    应用总配置。

    interval_ms / max_retries:
      - 轮询周期与连续失败阈值
    fetch_limit / initial_limit:
      - 带 cursor 拉取的单次上限 / 首次加载条数（仅 SQLite 数据源生效，HTTP 由服务端决定）
    viewer_id:
      - 当前用户；用于成员校验与 hasReacted/hasBookmarked 计算
    rooms:
      - 默认要同步的房间 id 列表
    """

    interval_ms: int
    max_retries: int
    fetch_limit: int
    initial_limit: int
    viewer_id: str
    rooms: tuple[str, ...]
    sqlite: SqliteSourceConfig | None
    http: HttpSourceConfig | None

    def resolve_env(self, env_name: str | None) -> str | None:
        if not env_name:
            return None
        return os.environ.get(env_name)


def load_config(config_path: str) -> AppConfig:
    """
    读取 JSON 配置。

    顶层结构（示意）：
    {
      "polling": {"interval_ms": 3000, "max_retries": 3},
      "limits": {"fetch_limit": 50, "initial_limit": 50},
      "viewer_id": "u1",
      "rooms": ["r1"],
      "source": {"sqlite": {"sqlite_path": "./roompoll.sqlite3"}}
    }
    source 下 sqlite / http 二选一。
    """
    with open(config_path, "rb") as f:
        raw = json.loads(f.read().decode("utf-8"))

    root = _require_dict(raw, where="$")
    polling = _require_dict(root.get("polling", {}), where="$.polling")
    limits = _require_dict(root.get("limits", {}), where="$.limits")

    interval_ms = _get_int(polling, "interval_ms", POLLING_INTERVAL_MS)
    max_retries = _get_int(polling, "max_retries", POLLING_MAX_RETRIES)
    if interval_ms <= 0:
        raise ValueError(f"$.polling.interval_ms must be positive, got {interval_ms}")
    if max_retries < 1:
        raise ValueError(f"$.polling.max_retries must be >= 1, got {max_retries}")

    viewer_id = _get_str(root, "viewer_id")
    if not viewer_id:
        raise ValueError("$.viewer_id is required")

    source = _require_dict(root.get("source", {}), where="$.source")

    sqlite_cfg: SqliteSourceConfig | None = None
    if isinstance(source.get("sqlite"), dict):
        sq = _require_dict(source["sqlite"], where="$.source.sqlite")
        sqlite_cfg = SqliteSourceConfig(sqlite_path=str(sq.get("sqlite_path") or "./roompoll.sqlite3"))

    http_cfg: HttpSourceConfig | None = None
    if isinstance(source.get("http"), dict):
        hs = _require_dict(source["http"], where="$.source.http")
        base_url = _get_str(hs, "base_url")
        if not base_url:
            raise ValueError("$.source.http.base_url is required")
        http_cfg = HttpSourceConfig(
            base_url=base_url,
            token_env=str(hs.get("token_env") or "ROOMPOLL_TOKEN"),
            timeout_seconds=_get_int(hs, "timeout_seconds", 10),
        )

    if (sqlite_cfg is None) == (http_cfg is None):
        raise ValueError("$.source must configure exactly one of: sqlite, http")

    return AppConfig(
        interval_ms=interval_ms,
        max_retries=max_retries,
        fetch_limit=max(1, _get_int(limits, "fetch_limit", MESSAGE_FETCH_LIMIT)),
        initial_limit=max(1, _get_int(limits, "initial_limit", INITIAL_MESSAGE_LIMIT)),
        viewer_id=viewer_id,
        rooms=tuple(_get_str_list(root, "rooms", [])),
        sqlite=sqlite_cfg,
        http=http_cfg,
    )


def build_source(config: AppConfig) -> MessageSource:
    """
    配置 -> 数据源实例的装配。

    HTTP 数据源的 Session 显式构建并按引用注入；token 缺失时直接报错，而不是匿名访问。
    """
    if config.sqlite is not None:
        store = SqliteMessageStore(config.sqlite.sqlite_path)
        store.ensure_schema()
        feed = MessageFeed(store=store, fetch_limit=config.fetch_limit, initial_limit=config.initial_limit)
        return LocalMessageSource(feed=feed, viewer_id=config.viewer_id)

    assert config.http is not None
    token = config.resolve_env(config.http.token_env)
    if not token:
        raise ValueError(f"access token env {config.http.token_env} is not set")
    session = Session(user_id=config.viewer_id, access_token=token)
    return HttpMessageSource(
        base_url=config.http.base_url,
        session=session,
        http=HttpClient(timeout_seconds=config.http.timeout_seconds),
    )
