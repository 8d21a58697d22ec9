"""
轮询与拉取相关的默认参数。
"""

# 轮询周期（毫秒）
POLLING_INTERVAL_MS = 3000

# 重试等待（毫秒）。仅作为文档默认值保留：重试节奏复用轮询周期，不额外调度。
POLLING_RETRY_DELAY_MS = 5000

# 连续失败多少次后才对调用方暴露错误
POLLING_MAX_RETRIES = 3

# 带 cursor 拉取时单次最多返回的条数
MESSAGE_FETCH_LIMIT = 50

# 首次（无 cursor）加载的条数
INITIAL_MESSAGE_LIMIT = 50

BOOKMARK_FETCH_LIMIT = 50

MAX_MESSAGE_LENGTH = 2000

MAX_ROOM_NAME_LENGTH = 50
