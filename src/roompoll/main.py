from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Any, Callable

from .config import AppConfig, build_source, load_config
from .models import Message
from .result import Err
from .room_sync import RoomSync
from .sources.base import MessageSource


logger = logging.getLogger("roompoll")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="roompoll", description="Chat room message poller")
    p.add_argument("--config", required=True, help="Path to JSON config file")
    p.add_argument(
        "--room",
        action="append",
        default=[],
        help="Room id to sync (repeatable). Defaults to the rooms listed in config",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env ROOMPOLL_LOG_LEVEL or INFO",
    )
    p.add_argument(
        "--status-interval",
        type=int,
        default=None,
        help="Follow-mode heartbeat interval seconds. Defaults to env ROOMPOLL_STATUS_INTERVAL_SECONDS or 30. Set 0 to disable.",
    )

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument("--once", action="store_true", help="Fetch the latest page of each room and exit")
    mode.add_argument("--follow", action="store_true", help="Poll the rooms until interrupted")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def format_message(message: Message) -> str:
    author = message.author_nickname or message.author_id
    line = f"[{message.created_at:%Y-%m-%d %H:%M:%S}] #{message.id} {author}: {message.content}"
    if message.reaction_count:
        line += f" (+{message.reaction_count})"
    return line


async def run_once(source: MessageSource, rooms: tuple[str, ...]) -> int:
    exit_code = 0
    for room_id in rooms:
        result = await source.fetch_messages(room_id)
        if isinstance(result, Err):
            logger.error("fetch failed: room_id=%s error=%s", room_id, result.error)
            exit_code = 1
            continue
        for message in result.data.items:
            print(format_message(message))
        logger.info(
            "once done: room_id=%s messages=%d has_more=%s",
            room_id,
            len(result.data.items),
            result.data.has_more,
        )
    return exit_code


def _printer(room_id: str) -> Callable[[list[Message]], None]:
    def on_messages(messages: list[Message]) -> None:
        for message in messages:
            print(format_message(message))
        logger.debug("new messages: room_id=%s count=%d", room_id, len(messages))

    return on_messages


def _error_logger(room_id: str) -> Callable[[Any], None]:
    def on_error(error: Any) -> None:
        logger.error("room polling failing: room_id=%s error=%s", room_id, error)

    return on_error


async def run_follow(
    source: MessageSource,
    config: AppConfig,
    rooms: tuple[str, ...],
    *,
    status_interval: int,
) -> None:
    syncs = [
        RoomSync(
            source,
            room_id,
            interval=config.interval_ms,
            max_retries=config.max_retries,
            on_messages=_printer(room_id),
            on_error=_error_logger(room_id),
        )
        for room_id in rooms
    ]
    for sync in syncs:
        sync.enable()

    try:
        while True:
            await asyncio.sleep(status_interval if status_interval > 0 else 3600)
            if status_interval <= 0:
                continue
            logger.info(
                "follow alive: %s",
                "; ".join(
                    f"{s.room_id}(status={s.status} messages={len(s.messages)} cursor={s.cursor} error={s.error})"
                    for s in syncs
                ),
            )
    finally:
        for sync in syncs:
            await sync.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    env_log_level = os.environ.get("ROOMPOLL_LOG_LEVEL")
    logging.basicConfig(
        level=_resolve_log_level(args.log_level or env_log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = load_config(args.config)
    source = build_source(config)
    rooms = tuple(args.room) or config.rooms
    if not rooms:
        logger.error("no rooms configured; pass --room or set rooms in config")
        return 2

    status_interval = args.status_interval
    if status_interval is None:
        try:
            status_interval = int(os.environ.get("ROOMPOLL_STATUS_INTERVAL_SECONDS") or 30)
        except ValueError:
            status_interval = 30
    status_interval = max(0, int(status_interval))

    mode = "follow" if args.follow else "once"
    logger.info("roompoll start: mode=%s config=%s source=%s", mode, args.config, source.key())
    logger.info(
        "config: interval_ms=%d max_retries=%d viewer_id=%s rooms=%s",
        config.interval_ms,
        config.max_retries,
        config.viewer_id,
        ",".join(rooms),
    )

    if not args.follow:
        return asyncio.run(run_once(source, rooms))

    try:
        asyncio.run(run_follow(source, config, rooms, status_interval=status_interval))
    except KeyboardInterrupt:
        logger.info("interrupted; polling stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
