from .base import MessageSource, SnapshotSource
from .http import HttpMessageSource
from .local import LocalMessageSource

__all__ = [
    "HttpMessageSource",
    "LocalMessageSource",
    "MessageSource",
    "SnapshotSource",
]
