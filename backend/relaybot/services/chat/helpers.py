"""
Helper functions shared by the message handler and the text commands.
"""
import asyncio
from contextlib import asynccontextmanager, suppress
from typing import List

from relaybot.core.logging import describe_http_error, get_logger
from relaybot.services.chat.platform import ChatChannel, SentMessage
from relaybot.utils.text_cleaning import segment_text

logger = get_logger("services.chat.helpers")


async def reply_split_message(
    channel: ChatChannel,
    message_id: str,
    content: str,
    max_length: int
) -> List[SentMessage]:
    """
    Reply with content split into platform-sized messages.

    The first chunk is sent as a reply to ``message_id``, the rest as plain
    messages in the same channel.

    Returns:
        The messages sent, in order
    """
    sent = []
    for i, chunk in enumerate(segment_text(content, max_length)):
        if i == 0:
            sent.append(await channel.reply(message_id, chunk))
        else:
            sent.append(await channel.send(chunk))
    return sent


@asynccontextmanager
async def keep_typing(channel: ChatChannel, interval: float):
    """
    Show the typing indicator now and every ``interval`` seconds until exit.

    A failing refresh stops the refresh loop but does not interrupt the body.
    """
    await channel.trigger_typing()

    async def refresh():
        while True:
            await asyncio.sleep(interval)
            try:
                await channel.trigger_typing()
            except Exception as e:
                logger.error(describe_http_error(e))
                return

    task = asyncio.create_task(refresh())
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
