"""Log streaming: live-tailed, polled or replayed conversation logs."""

from agentlog.streaming.service import (
    COMPLETION_LINE,
    ConversationNotFoundError,
    LogLine,
    LogStream,
    LogStreamError,
    LogStreamingService,
    StreamSourceUnavailableError,
    completion_line,
)

__all__ = [
    "COMPLETION_LINE",
    "ConversationNotFoundError",
    "LogLine",
    "LogStream",
    "LogStreamError",
    "LogStreamingService",
    "StreamSourceUnavailableError",
    "completion_line",
]
