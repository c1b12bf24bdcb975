"""
Backend pool dispatcher.
Runs one request against exactly one member of a pool, retrying across
endpoints and rounds until it succeeds or the retry budget is used up.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, model_validator

from relaybot.core.config import Settings
from relaybot.core.errors import BackendError
from relaybot.core.logging import describe_http_error, get_logger
from relaybot.core.pool import BackendPool, join_url

logger = get_logger("core.dispatcher")


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


class RequestEnvelope(BaseModel):
    """One backend call, built by the caller and never mutated."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: HttpMethod = HttpMethod.POST
    body: Optional[Any] = None
    attachments: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _attachments_need_object_body(self) -> "RequestEnvelope":
        if self.attachments and self.body is not None and not isinstance(self.body, dict):
            raise ValueError("Attachments require a JSON object body")
        return self

    def json_body(self) -> Optional[Any]:
        """Body to send; base64 attachments go under ``images``."""
        if not self.attachments:
            return self.body
        body = dict(self.body or {})
        body["images"] = list(self.attachments)
        return body


class RoundOutcome(str, Enum):
    SUCCESS = "success"
    ERRORED = "errored"  # at least one endpoint was tried and all tried failed
    BUSY = "busy"        # no endpoint could be claimed at all


@dataclass
class RoundResult:
    """Result of one pass over the pool."""

    index: int
    outcome: RoundOutcome
    body: Optional[str] = None
    errors: List[BaseException] = field(default_factory=list)

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.errors[-1] if self.errors else None


Sleep = Callable[[float], Awaitable[None]]


class Dispatcher:
    """Selection, retry and backoff over a BackendPool."""

    def __init__(
        self,
        pool: BackendPool,
        max_rounds: int = 3,
        round_delay: float = 1.0,
        poll_interval: float = 1.0,
        unavailable_delay: float = 5.0,
        max_busy_rounds: int = 60,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if max_busy_rounds < 1:
            raise ValueError("max_busy_rounds must be at least 1")
        self.pool = pool
        self.max_rounds = max_rounds
        self.round_delay = round_delay
        self.poll_interval = poll_interval
        self.unavailable_delay = unavailable_delay
        self.max_busy_rounds = max_busy_rounds
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, pool: BackendPool, settings: Settings, **kwargs) -> "Dispatcher":
        """Build a dispatcher using the retry tuning from settings."""
        return cls(
            pool,
            max_rounds=settings.max_rounds,
            round_delay=settings.round_delay,
            poll_interval=settings.poll_interval,
            unavailable_delay=settings.unavailable_delay,
            max_busy_rounds=settings.max_busy_rounds,
            timeout=settings.request_timeout,
            **kwargs,
        )

    async def dispatch(self, envelope: RequestEnvelope) -> str:
        """
        Execute the envelope against one endpoint of the pool.

        Args:
            envelope: Path, method and body of the call.

        Returns:
            The response body text of the first successful attempt.

        Raises:
            BackendError: If every failed round or every busy round was used up.
        """
        failed_rounds = 0
        busy_rounds = 0
        last_error: Optional[BaseException] = None
        index = 0

        while True:
            await self._wait_for_available()
            result = await self._run_round(index, envelope)
            index += 1

            if result.outcome is RoundOutcome.SUCCESS:
                return result.body

            if result.outcome is RoundOutcome.ERRORED:
                last_error = result.last_error
                failed_rounds += 1
                if failed_rounds >= self.max_rounds:
                    raise BackendError(
                        f"All {self.pool.name} servers failed after {failed_rounds} round(s): {last_error}",
                        last_error=last_error,
                    )
                logger.warning(
                    f"Round {result.index} on {self.pool.name} failed "
                    f"({len(result.errors)} error(s)), retrying in {self.round_delay}s"
                )
                await self._sleep(self.round_delay)
                continue

            busy_rounds += 1
            if busy_rounds >= self.max_busy_rounds:
                if last_error is None:
                    raise BackendError(
                        f"No {self.pool.name} servers available after {busy_rounds} round(s)",
                        exhausted_without_error=True,
                    )
                raise BackendError(
                    f"No {self.pool.name} servers available, last error: {last_error}",
                    last_error=last_error,
                )
            logger.info(
                f"All {self.pool.name} servers busy in round {result.index}, "
                f"waiting {self.unavailable_delay}s"
            )
            await self._sleep(self.unavailable_delay)

    async def _wait_for_available(self) -> None:
        """Liveness wait: poll until at least one endpoint is free."""
        waited = False
        while not self.pool.has_available():
            if not waited:
                logger.debug(f"Waiting for a free {self.pool.name} server")
                waited = True
            await self._sleep(self.poll_interval)

    async def _run_round(self, index: int, envelope: RequestEnvelope) -> RoundResult:
        """Try every endpoint once, in the pool's order, until one succeeds."""
        errors: List[BaseException] = []

        for position in self.pool.attempt_order():
            if not self.pool.try_acquire(position):
                continue
            try:
                body = await self._send(position, envelope)
            except Exception as e:
                errors.append(e)
                logger.error(describe_http_error(e))
                continue
            finally:
                self.pool.release(position)
            return RoundResult(index=index, outcome=RoundOutcome.SUCCESS, body=body)

        if errors:
            return RoundResult(index=index, outcome=RoundOutcome.ERRORED, errors=errors)
        return RoundResult(index=index, outcome=RoundOutcome.BUSY)

    async def _send(self, position: int, envelope: RequestEnvelope) -> str:
        url = join_url(self.pool.endpoints[position].base_url, envelope.path)
        logger.debug(f"Making {self.pool.name} request to {url}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.request(
                envelope.method.value, url, json=envelope.json_body()
            )
            response.raise_for_status()
            return response.text
