from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Generic, TypeVar


T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")


class ErrorCode(StrEnum):
    """
    错误种类（封闭枚举）。

    轮询核心只关心前三个；其余来自聊天服务的写操作。
    """

    NOT_A_MEMBER = "NOT_A_MEMBER"
    NETWORK_ERROR = "NETWORK_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    NOT_MESSAGE_OWNER = "NOT_MESSAGE_OWNER"
    ALREADY_MEMBER = "ALREADY_MEMBER"
    EMPTY_MESSAGE = "EMPTY_MESSAGE"
    MESSAGE_TOO_LONG = "MESSAGE_TOO_LONG"
    INVALID_INPUT = "INVALID_INPUT"

    @classmethod
    def parse(cls, value: object) -> ErrorCode:
        """未知的错误码一律归为 INTERNAL_ERROR。"""
        try:
            return cls(str(value))
        except ValueError:
            return cls.INTERNAL_ERROR


def http_status(code: ErrorCode) -> int:
    match code:
        case ErrorCode.UNAUTHORIZED:
            return 401
        case ErrorCode.NOT_A_MEMBER | ErrorCode.NOT_MESSAGE_OWNER:
            return 403
        case ErrorCode.ROOM_NOT_FOUND | ErrorCode.MESSAGE_NOT_FOUND:
            return 404
        case ErrorCode.ALREADY_MEMBER:
            return 409
        case ErrorCode.EMPTY_MESSAGE | ErrorCode.MESSAGE_TOO_LONG | ErrorCode.INVALID_INPUT:
            return 400
        case ErrorCode.NETWORK_ERROR:
            return 503
        case ErrorCode.INTERNAL_ERROR:
            return 500


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    data: T

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E

    @property
    def success(self) -> bool:
        return False


Result = Ok[T] | Err[E]


def is_ok(result: Result[T, E]) -> bool:
    return isinstance(result, Ok)


def is_err(result: Result[T, E]) -> bool:
    return isinstance(result, Err)


def map_result(result: Result[T, E], fn: Callable[[T], U]) -> Result[U, E]:
    if isinstance(result, Ok):
        return Ok(fn(result.data))
    return result


def unwrap_or(result: Result[T, E], default: T) -> T:
    if isinstance(result, Ok):
        return result.data
    return default
