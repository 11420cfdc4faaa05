"""Resilience wrapper around every outbound AI call.

Each call goes through validation, a per-provider sliding-window rate limit,
the operation itself (optionally bounded by a timeout), error classification
and exponential-backoff retries. Failures come back as an
``AiOperationResult`` instead of an exception.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from docserve.ai.errors import AiErrorType, AiOperationError, classify_exception
from docserve.config import MiddlewareConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AiOperationContext:
    """Per-call limits checked before an operation runs."""

    prompt: Optional[str] = None
    max_tokens: int = 4000
    timeout_ms: int = 300_000
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AiOperationResult(Generic[T]):
    is_success: bool
    operation_name: str
    provider_name: str
    duration: float
    data: Optional[T] = None
    error: Optional[AiOperationError] = None
    retry_count: int = 0
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def success(
        cls, data: T, operation_name: str, provider_name: str, duration: float, retry_count: int = 0
    ) -> "AiOperationResult[T]":
        return cls(True, operation_name, provider_name, duration, data=data, retry_count=retry_count)

    @classmethod
    def failure(
        cls,
        error: AiOperationError,
        operation_name: str,
        provider_name: str,
        duration: float,
        retry_count: int = 0,
    ) -> "AiOperationResult[T]":
        return cls(False, operation_name, provider_name, duration, error=error, retry_count=retry_count)

    def unwrap(self) -> T:
        """Return the data, or raise the classified error."""
        if not self.is_success:
            raise self.error or AiOperationError(f"{self.operation_name} failed without an error")
        return self.data  # type: ignore[return-value]


@dataclass(frozen=True)
class AiOperationStatistics:
    total_retries: int
    operations_with_retries: int
    active_rate_limit_keys: int
    retry_count_by_operation: dict[str, int]


class AiOperationMiddleware:
    """Provider-agnostic retry, rate-limit and classification layer.

    ``provider_key`` only partitions the rate limit; the middleware has no
    knowledge of the backend behind it. The same instance can protect
    embedding and generation calls.
    """

    def __init__(
        self,
        config: MiddlewareConfig | None = None,
        observer: Callable[[AiOperationResult[Any]], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or MiddlewareConfig()
        self._observer = observer
        self._sleep = sleep
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}
        self._retry_counts: dict[str, int] = {}
        self._operations_with_retries = 0

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        provider_key: str,
        context: AiOperationContext | None = None,
    ) -> AiOperationResult[T]:
        """Run ``operation`` with validation, rate limiting and retries."""
        started = time.monotonic()
        operation_id = uuid.uuid4().hex[:8]
        logger.debug(f"[{operation_id}] Starting {operation_name} with {provider_key}")

        errors = self._validate(operation_name, context)
        if errors:
            error = AiOperationError(
                f"Operation validation failed: {', '.join(errors)}",
                AiErrorType.VALIDATION_ERROR,
            )
            return self._finish(
                AiOperationResult.failure(error, operation_name, provider_key, time.monotonic() - started)
            )

        if not self._acquire_rate_slot(provider_key):
            logger.warning(f"[{operation_id}] Rate limit exceeded for {provider_key}: {operation_name}")
            error = AiOperationError(
                "Rate limit exceeded. Please try again later.",
                AiErrorType.RATE_LIMIT_EXCEEDED,
            )
            return self._finish(
                AiOperationResult.failure(error, operation_name, provider_key, time.monotonic() - started)
            )

        timeout = context.timeout_ms / 1000 if context is not None else None
        attempt = 0
        while True:
            try:
                if timeout is not None:
                    data = await asyncio.wait_for(operation(), timeout)
                else:
                    data = await operation()
            except Exception as exc:
                error = classify_exception(exc, operation_name, provider_key)
                if error.is_retryable and attempt < self.config.max_retries:
                    delay = self._retry_delay(attempt)
                    attempt += 1
                    self._record_retry(provider_key, operation_name, first=attempt == 1)
                    logger.warning(
                        f"[{operation_id}] Retryable {error.error_type.value} in {operation_name} "
                        f"(attempt {attempt}/{self.config.max_retries + 1}), retrying in {delay:.2f}s: {error}"
                    )
                    await self._sleep(delay)
                    continue

                logger.error(
                    f"[{operation_id}] {operation_name} failed with {provider_key} "
                    f"after {attempt + 1} attempt(s): {error}"
                )
                return self._finish(
                    AiOperationResult.failure(
                        error, operation_name, provider_key, time.monotonic() - started, attempt
                    )
                )

            elapsed = time.monotonic() - started
            logger.debug(f"[{operation_id}] {operation_name} completed in {elapsed * 1000:.0f}ms")
            return self._finish(
                AiOperationResult.success(data, operation_name, provider_key, elapsed, attempt)
            )

    def _validate(self, operation_name: str, context: AiOperationContext | None) -> list[str]:
        errors = []
        if not operation_name or not operation_name.strip():
            errors.append("Operation name cannot be empty")
        if context is not None:
            if context.max_tokens <= 0:
                errors.append("max_tokens must be greater than 0")
            if context.timeout_ms <= 0:
                errors.append("timeout_ms must be greater than 0")
            if context.prompt and len(context.prompt) > self.config.max_prompt_length:
                errors.append(
                    f"Prompt length ({len(context.prompt)}) exceeds maximum allowed "
                    f"({self.config.max_prompt_length})"
                )
        return errors

    def _acquire_rate_slot(self, provider_key: str) -> bool:
        """Record a request in the provider's window if there is room for it."""
        if not self.config.enable_rate_limiting:
            return True

        now = time.monotonic()
        window_start = now - self.config.rate_limit_window_seconds
        with self._lock:
            requests = self._windows.setdefault(provider_key, deque())
            while requests and requests[0] <= window_start:
                requests.popleft()
            if len(requests) >= self.config.requests_per_window(provider_key):
                return False
            requests.append(now)
            return True

    def _retry_delay(self, attempt: int) -> float:
        delay_ms = min(
            self.config.base_retry_delay_ms * (2**attempt),
            self.config.max_retry_delay_ms,
        )
        return delay_ms / 1000

    def _record_retry(self, provider_key: str, operation_name: str, first: bool) -> None:
        key = f"{provider_key}:{operation_name}"
        with self._lock:
            self._retry_counts[key] = self._retry_counts.get(key, 0) + 1
            if first:
                self._operations_with_retries += 1

    def _finish(self, result: AiOperationResult[T]) -> AiOperationResult[T]:
        if self._observer is not None:
            self._observer(result)
        return result

    def statistics(self) -> AiOperationStatistics:
        with self._lock:
            return AiOperationStatistics(
                total_retries=sum(self._retry_counts.values()),
                operations_with_retries=self._operations_with_retries,
                active_rate_limit_keys=len(self._windows),
                retry_count_by_operation=dict(self._retry_counts),
            )

    def reset_statistics(self) -> None:
        """Clear retry counters and rate-limit windows."""
        with self._lock:
            self._retry_counts.clear()
            self._windows.clear()
            self._operations_with_retries = 0
