"""
Conversation context store.
Tracks, per chat channel, the backend context token of the dialogue and which
reply messages were produced by which token.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from relaybot.core.logging import get_logger

logger = get_logger("services.context_store")


@dataclass
class ConversationState:
    """Dialogue state of one channel."""
    turn_count: int = 0
    last_context: Optional[Any] = None
    reply_index: Dict[str, Any] = field(default_factory=dict)


class ContextStore:
    """
    In-memory store of conversation state, keyed by channel id.

    State lives for the lifetime of the process. Entries of a channel's reply
    index are never evicted individually; ``reset`` drops the whole channel.
    """

    def __init__(self):
        self._states: Dict[str, ConversationState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, channel_id: str) -> Optional[ConversationState]:
        """Return the channel's state without creating it."""
        return self._states.get(channel_id)

    def get_or_create(self, channel_id: str) -> ConversationState:
        """Return the channel's state, creating an empty one on first use."""
        state = self._states.get(channel_id)
        if state is None:
            state = ConversationState()
            self._states[channel_id] = state
            logger.debug(f"Started conversation in channel {channel_id}")
        return state

    def turn_count(self, channel_id: str) -> int:
        state = self._states.get(channel_id)
        return state.turn_count if state else 0

    def resolve_context(
        self,
        channel_id: str,
        referenced_message_id: Optional[str] = None
    ) -> Optional[Any]:
        """
        Find the context token a new turn should continue from.

        Args:
            channel_id: Channel of the incoming message
            referenced_message_id: Id of the bot message being replied to, if any

        Returns:
            The token mapped to the referenced message, or the channel's latest
            token when no message is referenced. None if nothing is known.
        """
        state = self._states.get(channel_id)
        if state is None:
            return None
        if referenced_message_id is not None:
            return state.reply_index.get(referenced_message_id)
        return state.last_context

    def record(
        self,
        channel_id: str,
        reply_message_ids: Iterable[str],
        context_token: Any
    ) -> ConversationState:
        """
        Record the outcome of a successful turn.

        Every delivered reply message maps to the same token, so replying to
        any of them resumes the dialogue at this point.
        """
        state = self.get_or_create(channel_id)
        for message_id in reply_message_ids:
            state.reply_index[message_id] = context_token
        state.last_context = context_token
        state.turn_count += 1
        return state

    def reset(self, channel_id: str) -> int:
        """
        Forget everything about a channel.

        Returns:
            The turn count the channel had (0 if it had no state)
        """
        state = self._states.pop(channel_id, None)
        if state is None:
            return 0
        logger.info(f"Cleared conversation in channel {channel_id} ({state.turn_count} turns)")
        return state.turn_count

    def channel_lock(self, channel_id: str) -> asyncio.Lock:
        """Lock serialising the turns of one channel across workers."""
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[channel_id] = lock
        return lock
