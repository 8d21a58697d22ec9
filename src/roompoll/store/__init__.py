from .base import MessageStore
from .sqlite_store import SqliteMessageStore

__all__ = [
    "MessageStore",
    "SqliteMessageStore",
]
