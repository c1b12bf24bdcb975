"""
Pydantic schemas for API request/response models.
These define the structure of data flowing through the API.
"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field

from relaybot.core.constants import LimitsConstants
from relaybot.services.chat.platform import SentMessage


class ChatMessageRequest(BaseModel):
    """A user message posted to a channel through the gateway."""
    author_id: str
    author_name: str = ""
    content: str
    reply_to: Optional[str] = None
    is_direct: bool = False
    mentions_bot: bool = False


class ChatMessageResponse(BaseModel):
    """What the bot did with a posted message."""
    message_id: str
    outcome: str
    replies: List[SentMessage] = []
    typing_signals: int = 0


class ChannelStateResponse(BaseModel):
    """Conversation state summary of a channel."""
    channel_id: str
    turn_count: int
    has_context: bool
    reply_count: int


class ResetResponse(BaseModel):
    """Result of clearing a channel's conversation."""
    channel_id: str
    cleared: int


class Text2ImgRequest(BaseModel):
    """Request schema for text-to-image generation."""
    prompt: str = Field(..., min_length=1)
    width: int = Field(
        LimitsConstants.IMAGE_DEFAULT_SIZE,
        ge=LimitsConstants.IMAGE_MIN_SIZE,
        le=LimitsConstants.IMAGE_MAX_SIZE
    )
    height: int = Field(
        LimitsConstants.IMAGE_DEFAULT_SIZE,
        ge=LimitsConstants.IMAGE_MIN_SIZE,
        le=LimitsConstants.IMAGE_MAX_SIZE
    )
    steps: int = Field(
        LimitsConstants.IMAGE_DEFAULT_STEPS,
        ge=LimitsConstants.IMAGE_MIN_STEPS,
        le=LimitsConstants.IMAGE_MAX_STEPS
    )
    batch_count: int = Field(1, ge=1, le=LimitsConstants.IMAGE_MAX_BATCH_COUNT)
    batch_size: int = Field(1, ge=1, le=LimitsConstants.IMAGE_MAX_BATCH_SIZE)
    enhance_prompt: bool = False


class Text2ImgResponse(BaseModel):
    """Generated images, base64 encoded."""
    content: str
    images: List[str]


class HealthResponse(BaseModel):
    """Service status with backend pool availability."""
    status: str
    model: str
    pools: Dict[str, List[Dict]] = {}
