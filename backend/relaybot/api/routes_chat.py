"""
API routes for posting chat messages and managing channel conversations.
"""
from fastapi import APIRouter, Depends, Request

from relaybot.api.gateway import ChannelRegistry
from relaybot.api.schema import (
    ChannelStateResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    ResetResponse,
)
from relaybot.services.channel_queue import ChannelQueue
from relaybot.services.chat.handler import HandleOutcome, MessageHandler
from relaybot.services.context_store import ContextStore

router = APIRouter()


def get_handler(request: Request) -> MessageHandler:
    return request.app.state.handler


def get_store(request: Request) -> ContextStore:
    return request.app.state.store


def get_queue(request: Request) -> ChannelQueue:
    return request.app.state.queue


def get_registry(request: Request) -> ChannelRegistry:
    return request.app.state.registry


@router.post("/channels/{channel_id}/messages", response_model=ChatMessageResponse)
async def post_message(
    channel_id: str,
    body: ChatMessageRequest,
    handler: MessageHandler = Depends(get_handler),
    queue: ChannelQueue = Depends(get_queue),
    registry: ChannelRegistry = Depends(get_registry)
):
    """
    Post a user message to a channel.

    The message is handled after every earlier message of the same channel.
    Text starting with `.` is a command (`.reset`, `.help`, `.model`,
    `.system`, `.ping`); anything else is relayed to the model.

    - **reply_to**: id of a bot message to continue the dialogue from
    - **is_direct**: direct messages bypass the channel allow-list

    Returns the bot's messages produced for this one.
    """
    message = registry.incoming(
        channel_id,
        author_id=body.author_id,
        author_name=body.author_name,
        content=body.content,
        reply_to=body.reply_to,
        is_direct=body.is_direct,
        mentions_bot=body.mentions_bot
    )
    if not handler.accepts(message):
        return ChatMessageResponse(message_id=message.id, outcome=HandleOutcome.IGNORED.value)

    async def job():
        channel = registry.get(channel_id)
        channel.start_capture()
        outcome = await handler.handle(message, channel)
        return outcome, channel.drain(), channel.typing_signals

    outcome, replies, typing_signals = await queue.submit(channel_id, job)

    return ChatMessageResponse(
        message_id=message.id,
        outcome=outcome.value,
        replies=replies,
        typing_signals=typing_signals
    )


@router.get("/channels/{channel_id}", response_model=ChannelStateResponse)
async def get_channel_state(
    channel_id: str,
    store: ContextStore = Depends(get_store)
):
    """Conversation state summary of a channel."""
    state = store.get(channel_id)
    return ChannelStateResponse(
        channel_id=channel_id,
        turn_count=state.turn_count if state else 0,
        has_context=bool(state and state.last_context is not None),
        reply_count=len(state.reply_index) if state else 0
    )


@router.delete("/channels/{channel_id}", response_model=ResetResponse)
async def reset_channel(
    channel_id: str,
    store: ContextStore = Depends(get_store),
    queue: ChannelQueue = Depends(get_queue),
    registry: ChannelRegistry = Depends(get_registry)
):
    """
    Clear a channel's conversation, after any messages already queued for it.

    Bot messages posted before the reset no longer count as replies.
    """
    async def job():
        registry.discard(channel_id)
        return store.reset(channel_id)

    cleared = await queue.submit(channel_id, job)
    return ResetResponse(channel_id=channel_id, cleared=cleared)
