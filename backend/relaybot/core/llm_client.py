"""
LLM client for text generation.
Talks to an Ollama-compatible pool through the dispatcher.
"""
from typing import Any, Dict, Optional

from relaybot.core.base_client import BaseAIClient
from relaybot.core.constants import BackendPaths
from relaybot.core.dispatcher import HttpMethod, RequestEnvelope
from relaybot.core.logging import get_logger
from relaybot.utils.json_parser import GenerationResult, decode_generation, parse_json_object

logger = get_logger("core.llm_client")


class LLMClient(BaseAIClient):
    """Client for interacting with Language Models."""

    _model_info: Optional[Dict[str, Any]] = None

    async def get_model_info(self) -> Dict[str, Any]:
        """
        Fetch information about the configured model (template, system message).

        The result is cached for the lifetime of the client.
        """
        if self._model_info is None:
            envelope = RequestEnvelope(
                path=BackendPaths.SHOW,
                method=HttpMethod.POST,
                body={"name": self.settings.model}
            )
            body = await self._make_request(envelope, log_prefix="LLM Client")
            self._model_info = parse_json_object(body)
            logger.info(f"Loaded model info for {self.settings.model}")
        return self._model_info

    async def build_system_message(self) -> str:
        """
        Combine the model's own system message and the configured one.

        Returns:
            The system messages joined by a blank line (may be empty)
        """
        messages = []

        if self.settings.use_model_system:
            model_info = await self.get_model_info()
            if model_info.get("system"):
                messages.append(model_info["system"])

        if self.settings.custom_system_message:
            messages.append(self.settings.custom_system_message)

        return "\n\n".join(messages)

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        context: Optional[Any] = None
    ) -> GenerationResult:
        """
        Run a generation and decode the buffered JSON-lines stream.

        Args:
            prompt: User prompt
            system: Optional system message
            context: Context token of the turn being continued, if any

        Returns:
            GenerationResult with the response text and the new context token

        Raises:
            BackendError: If the pool kept failing
            MalformedResponseError: If the stream could not be decoded
        """
        payload = {
            "model": self.settings.model,
            "prompt": prompt,
            "system": system,
            "context": context
        }
        envelope = RequestEnvelope(path=BackendPaths.GENERATE, method=HttpMethod.POST, body=payload)

        body = await self._make_request(envelope, log_prefix="LLM Client")
        result = decode_generation(body)
        logger.debug(f"Decoded {result.record_count} records, {len(result.text)} chars")
        return result
