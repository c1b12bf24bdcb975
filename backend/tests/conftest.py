"""
Shared pytest fixtures for relay tests.
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relaybot.core.config import Settings
from relaybot.services.chat.platform import SentMessage


def ndjson(*records: dict) -> str:
    """Encode records as newline-delimited JSON."""
    return "\n".join(json.dumps(r) for r in records) + "\n"


def generation_body(text: str = "Hello there!", context: Any = None) -> str:
    """A buffered /api/generate stream: one record per word plus the terminal record."""
    context = [1, 2, 3] if context is None else context
    words = text.split(" ")
    records = [
        {"model": "test-model", "response": word if i == 0 else f" {word}", "done": False}
        for i, word in enumerate(words)
    ]
    records.append({"model": "test-model", "response": "", "done": True, "context": context})
    return ndjson(*records)


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self, on_sleep: Optional[Callable[[float], None]] = None):
        self.calls: List[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.on_sleep:
            self.on_sleep(delay)
        await asyncio.sleep(0)


class FakeChannel:
    """In-memory chat channel recording everything the bot does."""

    def __init__(self, channel_id: str = "general"):
        self.channel_id = channel_id
        self.sent: List[SentMessage] = []
        self.edits: List[tuple] = []
        self.typing = 0
        self._next = 1000

    def _post(self, content, reply_to):
        self._next += 1
        message = SentMessage(
            id=f"bot-{self._next}", channel_id=self.channel_id, content=content, reply_to=reply_to
        )
        self.sent.append(message)
        return message

    async def reply(self, message_id, content):
        return self._post(content, message_id)

    async def send(self, content):
        return self._post(content, None)

    async def edit(self, message_id, content):
        self.edits.append((message_id, content))
        for i, message in enumerate(self.sent):
            if message.id == message_id:
                self.sent[i] = message.model_copy(update={"content": content, "edited": True})
                return self.sent[i]
        raise KeyError(message_id)

    async def trigger_typing(self):
        self.typing += 1

    def is_own_message(self, message_id):
        return any(m.id == message_id for m in self.sent)

    @property
    def contents(self) -> List[str]:
        return [m.content for m in self.sent]


@pytest.fixture
def make_settings():
    """Build Settings isolated from any .env file, with instant retry delays."""
    def _make(**overrides) -> Settings:
        values = {
            "ollama": "http://llm-a:11434,http://llm-b:11434",
            "channels": "general",
            "model": "test-model",
            "round_delay": 0,
            "poll_interval": 0,
            "unavailable_delay": 0,
            "typing_interval": 60,
            "request_timeout": 5,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def llm_backend():
    """
    A scripted Ollama backend.

    ``responses`` maps a host to a list of (status, body) pairs consumed in
    order; the last pair repeats. Every request is recorded in ``requests``.
    """
    class Backend:
        def __init__(self):
            self.requests: List[httpx.Request] = []
            self.responses = {}
            self.model_info = {"system": "You are a model."}

        def json_bodies(self, path: str) -> List[dict]:
            return [json.loads(r.content) for r in self.requests if r.url.path == path]

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if request.url.path.endswith("/api/show"):
                return httpx.Response(200, json=self.model_info)
            script = self.responses.get(request.url.host, [(200, generation_body())])
            status, body = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(body, Exception):
                raise body
            return httpx.Response(status, text=body)

        @property
        def transport(self) -> httpx.MockTransport:
            return httpx.MockTransport(self.handler)

    return Backend()
