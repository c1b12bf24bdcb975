"""
Application-wide constants.
Centralizes all hardcoded values to prevent duplication and improve maintainability.
"""
from typing import List


class BackendPaths:
    """Backend API paths used by the clients."""

    GENERATE: str = "/api/generate"
    SHOW: str = "/api/show"
    TXT2IMG: str = "/sdapi/v1/txt2img"


class CommandConstants:
    """Text commands recognised at the start of a chat message."""

    PREFIX: str = "."

    RESET: List[str] = ["reset", "clear"]
    HELP: List[str] = ["help", "?", "h"]
    PING: List[str] = ["ping"]
    MODEL: List[str] = ["model"]
    SYSTEM: List[str] = ["system"]

    HELP_TEXT: str = (
        "Commands:\n"
        "- `.reset` `.clear`\n"
        "- `.help` `.?` `.h`\n"
        "- `.ping`\n"
        "- `.model`\n"
        "- `.system`"
    )


class ReplyConstants:
    """User-facing reply texts."""

    ERROR: str = "Error, please check the console"
    NO_RESPONSE: str = "(No response)"
    NOTHING_TO_CLEAR: str = "No messages to clear"
    CLEARED: str = "Cleared conversation of {count} messages"
    UNKNOWN_COMMAND: str = "Unknown command, type `.help` for a list of commands"
    START_OF_CONVERSATION: str = (
        "> This is the beginning of the conversation, type `.help` for help.\n\n"
    )


class LimitsConstants:
    """Limits and thresholds used throughout the application."""

    # Image generation (txt2img)
    IMAGE_DEFAULT_SIZE: int = 256
    IMAGE_MIN_SIZE: int = 128
    IMAGE_MAX_SIZE: int = 1024
    IMAGE_DEFAULT_STEPS: int = 10
    IMAGE_MIN_STEPS: int = 5
    IMAGE_MAX_STEPS: int = 20
    IMAGE_MAX_BATCH_COUNT: int = 4
    IMAGE_MAX_BATCH_SIZE: int = 5


# Export all constants for easy import
__all__ = [
    'BackendPaths',
    'CommandConstants',
    'ReplyConstants',
    'LimitsConstants'
]
