"""Text command routing for chat messages starting with the command prefix."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from relaybot.core.config import Settings
from relaybot.core.constants import CommandConstants, ReplyConstants
from relaybot.core.llm_client import LLMClient
from relaybot.core.logging import describe_http_error, get_logger
from relaybot.services.chat.helpers import reply_split_message
from relaybot.services.chat.platform import ChatChannel, IncomingMessage
from relaybot.services.context_store import ContextStore

logger = get_logger("services.chat.commands")


@dataclass
class CommandContext:
    """Everything a command needs to act and reply."""

    message: IncomingMessage
    channel: ChatChannel
    store: ContextStore
    llm_client: LLMClient
    settings: Settings
    args: List[str] = field(default_factory=list)


Handler = Callable[[CommandContext], Awaitable[None]]


def parse_command(text: str) -> Optional[Tuple[str, List[str]]]:
    """Split ``.name arg1 arg2`` into ``("name", ["arg1", "arg2"])``; None if not a command."""
    if not text.startswith(CommandConstants.PREFIX):
        return None
    parts = text[len(CommandConstants.PREFIX):].split()
    if not parts:
        return "", []
    return parts[0].lower(), parts[1:]


async def reset_command(ctx: CommandContext) -> None:
    cleared = ctx.store.reset(ctx.message.channel_id)
    if cleared > 0:
        content = ReplyConstants.CLEARED.format(count=cleared)
    else:
        content = ReplyConstants.NOTHING_TO_CLEAR
    await ctx.channel.reply(ctx.message.id, content)


async def help_command(ctx: CommandContext) -> None:
    await ctx.channel.reply(ctx.message.id, CommandConstants.HELP_TEXT)


async def model_command(ctx: CommandContext) -> None:
    await ctx.channel.reply(ctx.message.id, f"Current model: {ctx.settings.model}")


async def system_command(ctx: CommandContext) -> None:
    system_message = await ctx.llm_client.build_system_message()
    await reply_split_message(
        ctx.channel,
        ctx.message.id,
        f"System message:\n\n{system_message}",
        ctx.settings.message_max_length,
    )


async def ping_command(ctx: CommandContext) -> None:
    """Reply, then edit the reply to show the round-trip time."""
    try:
        before = time.monotonic()
        sent = await ctx.channel.reply(ctx.message.id, "Ping")
        difference = round((time.monotonic() - before) * 1000)
        await ctx.channel.edit(sent.id, f"Ping: {difference}ms")
    except Exception as e:
        logger.error(describe_http_error(e))
        await ctx.channel.reply(ctx.message.id, ReplyConstants.ERROR)


async def unknown_command(ctx: CommandContext) -> None:
    await ctx.channel.reply(ctx.message.id, ReplyConstants.UNKNOWN_COMMAND)


_COMMANDS: Dict[str, Handler] = {
    **{name: reset_command for name in CommandConstants.RESET},
    **{name: help_command for name in CommandConstants.HELP},
    **{name: model_command for name in CommandConstants.MODEL},
    **{name: system_command for name in CommandConstants.SYSTEM},
    **{name: ping_command for name in CommandConstants.PING},
}


def get_handler(name: str) -> Optional[Handler]:
    """Return the handler for a command name; None for the bare prefix."""
    if not name:
        return None
    return _COMMANDS.get(name, unknown_command)


async def run_command(
    text: str,
    message: IncomingMessage,
    channel: ChatChannel,
    store: ContextStore,
    llm_client: LLMClient,
    settings: Settings,
) -> bool:
    """
    Run the command in ``text`` if there is one.

    Returns:
        True if the text was a command (handled or ignored), False otherwise
    """
    parsed = parse_command(text)
    if parsed is None:
        return False

    name, args = parsed
    handler = get_handler(name)
    if handler is None:
        return True

    logger.debug(f"Command .{name} in channel {message.channel_id}")
    await handler(CommandContext(message, channel, store, llm_client, settings, args))
    return True
