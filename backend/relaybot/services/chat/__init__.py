"""Chat service package supporting message relaying and text commands."""

from .commands import run_command
from .handler import HandleOutcome, MessageHandler
from .platform import ChatChannel, IncomingMessage, SentMessage

__all__ = [
    "ChatChannel",
    "HandleOutcome",
    "IncomingMessage",
    "MessageHandler",
    "SentMessage",
    "run_command",
]
