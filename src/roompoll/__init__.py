"""
roompoll

聊天室消息的轮询同步核心：以固定周期按 cursor 增量拉取房间消息，
合并到客户端状态中，不重复、不丢失；连续失败达到阈值才对调用方暴露错误。
"""

from .models import FetchPage, Message, Session
from .poller import PollingEngine, PollState, configure
from .result import Err, ErrorCode, Ok, Result
from .room_sync import MessageState, RoomSync

__all__ = [
    "Err",
    "ErrorCode",
    "FetchPage",
    "Message",
    "MessageState",
    "Ok",
    "PollState",
    "PollingEngine",
    "Result",
    "RoomSync",
    "Session",
    "configure",
]
