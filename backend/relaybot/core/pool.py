"""Backend pool – per-endpoint availability tracking and selection order."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import httpx

from relaybot.core.errors import NoBackendsConfiguredError
from relaybot.core.logging import get_logger

logger = get_logger("core.pool")


class SelectionPolicy(str, Enum):
    """Order in which endpoints are tried within a round."""

    PRIORITY = "priority"
    RANDOM = "random"


@dataclass
class BackendEndpoint:
    """State of a single backend endpoint."""

    base_url: str
    available: bool = True  # False while this process has a request in flight


def shuffled_order(size: int, rng: random.Random | None = None) -> list[int]:
    """Return a uniformly random permutation of ``range(size)`` (Fisher–Yates)."""
    rng = rng or random
    order = list(range(size))
    for i in range(size - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def join_url(base_url: str, path: str) -> str:
    """Append ``path`` to the base URL's path with exactly one ``/`` between them."""
    url = httpx.URL(base_url)
    base_path = url.path if url.path.endswith("/") else url.path + "/"
    return str(url.copy_with(path=base_path + path.lstrip("/")))


class BackendPool:
    """A set of equivalent backends, at most one in-flight request each."""

    def __init__(
        self,
        urls: Iterable[str],
        policy: SelectionPolicy = SelectionPolicy.PRIORITY,
        name: str = "backend",
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.policy = SelectionPolicy(policy)
        self.endpoints: tuple[BackendEndpoint, ...] = tuple(
            BackendEndpoint(base_url=self._validate_url(url)) for url in urls
        )
        if not self.endpoints:
            raise NoBackendsConfiguredError(f"No {name} servers configured")
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        logger.info(
            f"Pool {name} ready with {len(self.endpoints)} endpoint(s), {self.policy.value} order"
        )

    @staticmethod
    def _validate_url(url: str) -> str:
        parsed = httpx.URL(url.strip())
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValueError(f"Invalid backend URL: {url!r}")
        return str(parsed)

    def __len__(self) -> int:
        return len(self.endpoints)

    def has_available(self) -> bool:
        with self._lock:
            return any(e.available for e in self.endpoints)

    def all_available(self) -> bool:
        with self._lock:
            return all(e.available for e in self.endpoints)

    def attempt_order(self) -> list[int]:
        """Endpoint indices in the order one round should try them."""
        if self.policy is SelectionPolicy.RANDOM:
            return shuffled_order(len(self.endpoints), self._rng)
        return list(range(len(self.endpoints)))

    def try_acquire(self, index: int) -> bool:
        """Atomically claim an endpoint; False if it is already busy."""
        with self._lock:
            endpoint = self.endpoints[index]
            if not endpoint.available:
                return False
            endpoint.available = False
            return True

    def release(self, index: int) -> None:
        with self._lock:
            self.endpoints[index].available = True

    def snapshot(self) -> list[dict]:
        """Availability of every endpoint, for status reporting."""
        with self._lock:
            return [
                {"url": e.base_url, "available": e.available}
                for e in self.endpoints
            ]
