"""Chat platform boundary: incoming messages and the channel operations the bot needs."""

from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel


class IncomingMessage(BaseModel):
    """A user message as delivered by the chat platform."""

    id: str
    channel_id: str
    author_id: str
    author_name: str = ""
    author_is_bot: bool = False
    content: str = ""
    reference_id: Optional[str] = None  # id of the message this one replies to
    is_direct: bool = False
    mentions_bot: bool = False


class SentMessage(BaseModel):
    """A message the bot posted."""

    id: str
    channel_id: str
    content: str
    reply_to: Optional[str] = None
    edited: bool = False


class ChatChannel(Protocol):
    """Operations on one chat channel."""

    async def reply(self, message_id: str, content: str) -> SentMessage: ...

    async def send(self, content: str) -> SentMessage: ...

    async def edit(self, message_id: str, content: str) -> SentMessage: ...

    async def trigger_typing(self) -> None: ...

    def is_own_message(self, message_id: str) -> bool: ...
