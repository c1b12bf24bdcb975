"""
API routes for image generation.
"""
import base64
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from relaybot.api.schema import Text2ImgRequest, Text2ImgResponse
from relaybot.core.constants import ReplyConstants
from relaybot.core.errors import BackendError, MalformedResponseError
from relaybot.core.image_client import ImageClient
from relaybot.core.logging import get_logger

logger = get_logger("api.image")

router = APIRouter()


def get_image_client(request: Request) -> Optional[ImageClient]:
    return request.app.state.image_client


@router.post("/text2img", response_model=Text2ImgResponse)
async def text2img(
    body: Text2ImgRequest,
    image_client: Optional[ImageClient] = Depends(get_image_client)
):
    """
    Convert text to images with the image generation pool.

    - **prompt**: Text to convert
    - **width** / **height**: 128-1024 pixels (default 256)
    - **steps**: 5-20 (default 10)
    - **batch_count**: 1-4, **batch_size**: 1-5
    - **enhance_prompt**: Let the backend enhance the prompt

    Returns the images base64 encoded.
    """
    if image_client is None:
        raise HTTPException(status_code=503, detail="No image generation servers configured")

    try:
        images = await image_client.text_to_image(
            body.prompt,
            width=body.width,
            height=body.height,
            steps=body.steps,
            batch_count=body.batch_count,
            batch_size=body.batch_size,
            enhance_prompt=body.enhance_prompt
        )
    except (BackendError, MalformedResponseError) as e:
        logger.error(f"Image generation failed: {e}")
        raise HTTPException(status_code=502, detail=ReplyConstants.ERROR)

    return Text2ImgResponse(
        content=f"Here are images from prompt `{body.prompt}`",
        images=[base64.b64encode(image).decode("utf-8") for image in images]
    )
