"""
HTTP chat gateway.
In-memory chat channels that let the relay run behind plain HTTP calls: the
gateway assigns message ids, remembers which messages the bot posted and
collects what the bot sends while a user message is being handled.
"""
import itertools
from typing import Dict, List, Optional

from relaybot.core.logging import get_logger
from relaybot.services.chat.platform import IncomingMessage, SentMessage

logger = get_logger("api.gateway")


class HttpChannel:
    """A chat channel whose output is captured per handled message."""

    def __init__(self, channel_id: str, ids: "itertools.count[int]"):
        self.channel_id = channel_id
        self._ids = ids
        self._own: Dict[str, SentMessage] = {}
        self._outbox: List[SentMessage] = []
        self.typing_signals = 0

    def next_id(self) -> str:
        return str(next(self._ids))

    def start_capture(self) -> None:
        """Begin collecting output for a new incoming message."""
        self._outbox = []
        self.typing_signals = 0

    def drain(self) -> List[SentMessage]:
        """Return (final versions of) the messages sent since start_capture."""
        captured = [self._own[m.id] for m in self._outbox]
        self._outbox = []
        return captured

    def _post(self, content: str, reply_to: Optional[str]) -> SentMessage:
        message = SentMessage(
            id=self.next_id(),
            channel_id=self.channel_id,
            content=content,
            reply_to=reply_to
        )
        self._own[message.id] = message
        self._outbox.append(message)
        return message

    async def reply(self, message_id: str, content: str) -> SentMessage:
        return self._post(content, message_id)

    async def send(self, content: str) -> SentMessage:
        return self._post(content, None)

    async def edit(self, message_id: str, content: str) -> SentMessage:
        if message_id not in self._own:
            raise KeyError(f"Unknown message {message_id} in channel {self.channel_id}")
        edited = self._own[message_id].model_copy(update={"content": content, "edited": True})
        self._own[message_id] = edited
        return edited

    async def trigger_typing(self) -> None:
        self.typing_signals += 1

    def is_own_message(self, message_id: str) -> bool:
        return message_id in self._own


class ChannelRegistry:
    """HTTP channels by id, sharing one message id sequence."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._channels: Dict[str, HttpChannel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def next_id(self) -> str:
        return str(next(self._ids))

    def get(self, channel_id: str) -> HttpChannel:
        channel = self._channels.get(channel_id)
        if channel is None:
            channel = HttpChannel(channel_id, self._ids)
            self._channels[channel_id] = channel
            logger.debug(f"Opened gateway channel {channel_id}")
        return channel

    def discard(self, channel_id: str) -> None:
        """Forget a channel and the messages the bot posted in it."""
        if self._channels.pop(channel_id, None) is not None:
            logger.debug(f"Closed gateway channel {channel_id}")

    def incoming(
        self,
        channel_id: str,
        author_id: str,
        content: str,
        author_name: str = "",
        reply_to: Optional[str] = None,
        is_direct: bool = False,
        mentions_bot: bool = False
    ) -> IncomingMessage:
        """Assign an id to a user message posted to a channel."""
        return IncomingMessage(
            id=self.next_id(),
            channel_id=channel_id,
            author_id=author_id,
            author_name=author_name,
            content=content,
            reference_id=reply_to,
            is_direct=is_direct,
            mentions_bot=mentions_bot
        )
