"""Hot-swappable reference to the active AI provider."""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

from docserve.protocols import AiProvider

logger = logging.getLogger(__name__)


class ProviderHandle:
    """Guarded reference cell around the active provider.

    Callers pin the provider for the duration of a call with ``acquire``.
    ``swap`` makes the replacement visible to new callers at once; the old
    provider is closed when its last in-flight call releases it.
    """

    def __init__(self, provider: AiProvider):
        self._lock = threading.Lock()
        self._current = provider
        self._in_flight: dict[int, int] = {}
        self._retired: dict[int, AiProvider] = {}

    @property
    def current(self) -> AiProvider:
        with self._lock:
            return self._current

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[AiProvider]:
        with self._lock:
            provider = self._current
            key = id(provider)
            self._in_flight[key] = self._in_flight.get(key, 0) + 1
        try:
            yield provider
        finally:
            await self._release(key)

    async def _release(self, key: int) -> None:
        to_close = None
        with self._lock:
            remaining = self._in_flight[key] - 1
            if remaining:
                self._in_flight[key] = remaining
            else:
                del self._in_flight[key]
                to_close = self._retired.pop(key, None)
        if to_close is not None:
            await self._close(to_close)

    async def swap(self, provider: AiProvider) -> None:
        """Install ``provider``; close the previous one once it is idle."""
        if provider is None:
            raise ValueError("provider must not be None")

        with self._lock:
            old = self._current
            self._current = provider
            if old is provider:
                return
            key = id(old)
            idle = key not in self._in_flight
            if not idle:
                self._retired[key] = old

        logger.info(f"AI provider switched to {provider.provider_name} using model {provider.current_model}")
        if idle:
            await self._close(old)

    async def aclose(self) -> None:
        await self._close(self.current)

    @staticmethod
    async def _close(provider: AiProvider) -> None:
        try:
            await provider.aclose()
        except Exception as exc:
            # Best effort: the replacement is already serving requests.
            logger.warning(f"Error closing provider {provider.provider_name}: {exc}")
