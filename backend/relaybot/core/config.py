"""
Configuration module for the relay bot.
Loads settings from environment variables.
"""
import json
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


FALSE_STRINGS = {"", "false", "no", "off", "0"}


def get_boolean(value) -> bool:
    """Loose boolean parsing: anything but empty/false/no/off/0 is true."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() not in FALSE_STRINGS


def split_list(value) -> List[str]:
    """Split a comma-separated environment value into trimmed, non-empty items."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def parse_env_string(value: Optional[str]) -> Optional[str]:
    """
    Decode a multi-line message stored in the environment.

    Every line is read as the body of a JSON string, so escapes such as
    ``\\n`` or ``\\"`` work. ``<date>`` is replaced by the current UTC date.

    Raises:
        ValueError: If a line is not a valid JSON string body.
    """
    if value is None:
        return None
    lines = []
    for line in value.replace("\r", "\n").split("\n"):
        if not line:
            continue
        try:
            lines.append(json.loads(f'"{line}"'))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid syntax in environment message: {e}") from e
    date = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")
    return re.sub(r"<date>", date, "\n".join(lines), flags=re.IGNORECASE)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Backend pools (comma-separated base URLs)
    ollama: Annotated[List[str], NoDecode] = []
    stable_diffusion: Annotated[List[str], NoDecode] = []
    random_server: bool = False

    # Chat
    model: str = "llama3:latest"
    channels: Annotated[List[str], NoDecode] = []
    system: Optional[str] = None
    use_system: bool = False
    use_model_system: bool = False
    initial_prompt: Optional[str] = None
    use_initial_prompt: bool = False
    show_start_of_conversation: bool = False
    requires_mention: bool = False
    message_max_length: int = 2000
    typing_interval: float = 7.0

    # Retry / backoff (seconds)
    max_rounds: int = 3
    round_delay: float = 1.0
    poll_interval: float = 1.0
    unavailable_delay: float = 5.0
    max_busy_rounds: int = 60
    request_timeout: float = 60.0

    @field_validator("ollama", "stable_diffusion", "channels", mode="before")
    @classmethod
    def _split_lists(cls, value):
        return split_list(value)

    @field_validator(
        "random_server",
        "use_system",
        "use_model_system",
        "use_initial_prompt",
        "show_start_of_conversation",
        "requires_mention",
        mode="before",
    )
    @classmethod
    def _loose_bool(cls, value):
        return get_boolean(value)

    @field_validator("system", "initial_prompt", mode="before")
    @classmethod
    def _decode_message(cls, value):
        return parse_env_string(value)

    @property
    def custom_system_message(self) -> Optional[str]:
        """System message from the environment, if enabled and non-empty."""
        if self.use_system and self.system:
            return self.system
        return None

    @property
    def active_initial_prompt(self) -> Optional[str]:
        """Initial prompt from the environment, if enabled and non-empty."""
        if self.use_initial_prompt and self.initial_prompt:
            return self.initial_prompt
        return None

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
