"""
Chat message handler.
Turns one incoming chat message into a backend generation and delivers the
reply, keeping the channel's conversation context up to date.
"""
from enum import Enum
from typing import Any, Optional, Tuple, Union

from relaybot.core.config import Settings, get_settings
from relaybot.core.constants import ReplyConstants
from relaybot.core.errors import BackendError, MalformedResponseError
from relaybot.core.llm_client import LLMClient
from relaybot.core.logging import get_logger
from relaybot.services.chat.commands import run_command
from relaybot.services.chat.helpers import keep_typing, reply_split_message
from relaybot.services.chat.platform import ChatChannel, IncomingMessage
from relaybot.services.context_store import ContextStore

logger = get_logger("services.chat.handler")


class HandleOutcome(str, Enum):
    IGNORED = "ignored"
    COMMAND = "command"
    REPLIED = "replied"
    FAILED = "failed"


class MessageHandler:
    """Relays chat messages to the LLM pool."""

    def __init__(
        self,
        llm_client: LLMClient,
        store: ContextStore,
        settings: Optional[Settings] = None
    ):
        self.llm_client = llm_client
        self.store = store
        self.settings = settings or get_settings()

    def accepts(self, message: IncomingMessage) -> bool:
        """Channel allow-list and author filters."""
        if not message.is_direct and message.channel_id not in self.settings.channels:
            return False
        if not message.author_id or message.author_is_bot:
            return False
        return bool(message.content)

    async def handle(self, message: IncomingMessage, channel: ChatChannel) -> HandleOutcome:
        """
        Handle one incoming message end to end.

        Failures never escape. Once a generation has started the user gets an
        error reply; the conversation state is only updated after a reply was
        delivered.

        Args:
            message: The incoming message
            channel: Channel to reply in

        Returns:
            What was done with the message
        """
        if not self.accepts(message):
            return HandleOutcome.IGNORED

        async with self.store.channel_lock(message.channel_id):
            try:
                prepared = await self._prepare(message, channel)
            except Exception as e:
                logger.error(f"Error handling message {message.id}: {e}", exc_info=True)
                return HandleOutcome.FAILED

            if isinstance(prepared, HandleOutcome):
                return prepared

            user_input, context = prepared
            try:
                await self._relay(message, channel, user_input, context)
                return HandleOutcome.REPLIED
            except (BackendError, MalformedResponseError) as e:
                logger.error(f"Generation failed in channel {message.channel_id}: {e}")
            except Exception as e:
                logger.error(f"Error relaying message {message.id}: {e}", exc_info=True)

            try:
                await channel.reply(message.id, ReplyConstants.ERROR)
            except Exception as e:
                logger.error(f"Could not deliver error reply: {e}")
            return HandleOutcome.FAILED

    async def _prepare(
        self,
        message: IncomingMessage,
        channel: ChatChannel
    ) -> Union[HandleOutcome, Tuple[str, Optional[Any]]]:
        """
        Resolve reply context, run commands and apply mention rules.

        Returns:
            An outcome if the message needs no generation, otherwise the user
            input and the context token referenced by the message (if any)
        """
        channel_id = message.channel_id
        context: Optional[Any] = None

        if message.reference_id is not None:
            # Only replies to our own messages with a known context continue a dialogue
            if not channel.is_own_message(message.reference_id):
                return HandleOutcome.IGNORED
            context = self.store.resolve_context(channel_id, message.reference_id)
            if context is None:
                return HandleOutcome.IGNORED

        user_input = message.content.strip()

        if await run_command(user_input, message, channel, self.store, self.llm_client, self.settings):
            return HandleOutcome.COMMAND

        if (
            self.settings.requires_mention
            and not message.is_direct
            and message.reference_id is None
            and not message.mentions_bot
        ):
            return HandleOutcome.IGNORED

        if not user_input:
            return HandleOutcome.IGNORED

        return user_input, context

    async def _relay(
        self,
        message: IncomingMessage,
        channel: ChatChannel,
        user_input: str,
        context: Optional[Any]
    ) -> None:
        """Generate a response, deliver it and record the new context."""
        channel_id = message.channel_id
        state = self.store.get_or_create(channel_id)
        logger.debug(f"{channel_id} - {message.author_name}: {user_input}")

        async with keep_typing(channel, self.settings.typing_interval):
            if context is None:
                context = self.store.resolve_context(channel_id)

            initial_prompt = self.settings.active_initial_prompt
            if initial_prompt and state.turn_count == 0:
                user_input = f"{initial_prompt}\n\n{user_input}"
                logger.debug("Adding initial prompt to message")

            system_message = await self.llm_client.build_system_message()
            result = await self.llm_client.generate(user_input, system=system_message, context=context)

        response_text = result.text or ReplyConstants.NO_RESPONSE
        logger.debug(f"Response: {response_text}")

        prefix = ""
        if self.settings.show_start_of_conversation and state.turn_count == 0:
            prefix = ReplyConstants.START_OF_CONVERSATION

        sent = await reply_split_message(
            channel, message.id, f"{prefix}{response_text}", self.settings.message_max_length
        )
        self.store.record(channel_id, [m.id for m in sent], result.context)
