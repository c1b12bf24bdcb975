"""
Image client for text-to-image generation.
Talks to a Stable-Diffusion-compatible pool through the dispatcher.
"""
import base64
import binascii
from typing import List

from relaybot.core.base_client import BaseAIClient
from relaybot.core.constants import BackendPaths, LimitsConstants
from relaybot.core.dispatcher import HttpMethod, RequestEnvelope
from relaybot.core.errors import MalformedResponseError
from relaybot.core.logging import get_logger
from relaybot.utils.json_parser import parse_json_object

logger = get_logger("core.image_client")


class ImageClient(BaseAIClient):
    """Client for interacting with image generation models."""

    async def text_to_image(
        self,
        prompt: str,
        width: int = LimitsConstants.IMAGE_DEFAULT_SIZE,
        height: int = LimitsConstants.IMAGE_DEFAULT_SIZE,
        steps: int = LimitsConstants.IMAGE_DEFAULT_STEPS,
        batch_count: int = 1,
        batch_size: int = 1,
        enhance_prompt: bool = False
    ) -> List[bytes]:
        """
        Generate images from a text prompt.

        Args:
            prompt: Text to convert
            width: Image width in pixels
            height: Image height in pixels
            steps: Number of sampling steps
            batch_count: Number of batches
            batch_size: Images per batch
            enhance_prompt: Ask the backend to enhance the prompt

        Returns:
            Decoded image files

        Raises:
            BackendError: If the pool kept failing
            MalformedResponseError: If the response carries no decodable images
        """
        payload = {
            "prompt": prompt,
            "width": width,
            "height": height,
            "steps": steps,
            "num_inference_steps": steps,
            "batch_count": batch_count,
            "batch_size": batch_size,
            "enhance_prompt": "yes" if enhance_prompt else "no"
        }
        envelope = RequestEnvelope(path=BackendPaths.TXT2IMG, method=HttpMethod.POST, body=payload)

        body = await self._make_request(envelope, log_prefix="Image Client")
        data = parse_json_object(body)

        images = data.get("images")
        if not isinstance(images, list):
            raise MalformedResponseError("Image response has no 'images' list")

        try:
            decoded = [base64.b64decode(image, validate=True) for image in images]
        except (binascii.Error, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Image response holds invalid base64: {e}") from e

        logger.info(f"Generated {len(decoded)} image(s) for prompt '{prompt[:50]}'")
        return decoded
