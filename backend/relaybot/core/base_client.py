"""
Base client for AI operations.
Provides common functionality for LLM and image clients.
"""
from relaybot.core.config import Settings, get_settings
from relaybot.core.dispatcher import Dispatcher, RequestEnvelope
from relaybot.core.logging import get_logger

logger = get_logger("core.base_client")

class BaseAIClient:
    """Base client for interacting with AI backends through a pool dispatcher."""

    def __init__(self, dispatcher: Dispatcher, settings: Settings = None):
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()

    async def _make_request(
        self,
        envelope: RequestEnvelope,
        log_prefix: str = "AI Client"
    ) -> str:
        """
        Send an envelope to the pool behind this client.

        Args:
            envelope: Path, method and body of the call.
            log_prefix: Prefix for log messages.

        Returns:
            The raw response body.

        Raises:
            BackendError: If every endpoint of the pool kept failing.
        """
        logger.debug(f"[{log_prefix}] {envelope.method.value} {envelope.path}")
        body = await self.dispatcher.dispatch(envelope)
        logger.debug(f"[{log_prefix}] Received {len(body)} bytes")
        return body
