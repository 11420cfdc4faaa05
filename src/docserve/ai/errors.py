"""Error taxonomy for AI operations."""

from __future__ import annotations

import asyncio
import enum

import httpx

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


class AiErrorType(str, enum.Enum):
    UNKNOWN_ERROR = "unknown_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    AUTHENTICATION_ERROR = "authentication_error"
    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    MODEL_NOT_AVAILABLE = "model_not_available"
    INSUFFICIENT_QUOTA = "insufficient_quota"


class AiOperationError(Exception):
    """A classified failure of an AI operation."""

    def __init__(
        self,
        message: str,
        error_type: AiErrorType = AiErrorType.UNKNOWN_ERROR,
        is_retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.is_retryable = is_retryable

    def __repr__(self) -> str:
        return f"AiOperationError({self.error_type.value}, {str(self)!r})"


def _classify_status(error: httpx.HTTPStatusError, operation_name: str, provider_key: str) -> AiOperationError:
    status = error.response.status_code
    if status in (401, 403):
        return AiOperationError(
            f"Authentication failed for {provider_key} (HTTP {status})",
            AiErrorType.AUTHENTICATION_ERROR,
        )
    if status == 402:
        return AiOperationError(
            f"Insufficient quota for {provider_key} in {operation_name}",
            AiErrorType.INSUFFICIENT_QUOTA,
        )
    if status == 404:
        return AiOperationError(
            f"Model not available at {provider_key} for {operation_name}",
            AiErrorType.MODEL_NOT_AVAILABLE,
        )
    if status == 429:
        return AiOperationError(
            f"{provider_key} rejected {operation_name}: too many requests",
            AiErrorType.RATE_LIMIT_EXCEEDED,
        )
    return AiOperationError(
        f"HTTP error in {operation_name}: {error}",
        AiErrorType.NETWORK_ERROR,
        status in RETRYABLE_STATUS_CODES,
    )


def classify_exception(error: BaseException, operation_name: str, provider_key: str) -> AiOperationError:
    """Map an arbitrary exception onto the AI error taxonomy.

    Order matters: httpx timeouts are transport errors too, and builtin
    ``TimeoutError`` is an ``OSError``.
    """
    if isinstance(error, AiOperationError):
        return error
    if isinstance(error, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
        return AiOperationError(
            f"Operation {operation_name} timed out", AiErrorType.TIMEOUT, True
        )
    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error, operation_name, provider_key)
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return AiOperationError(
            f"Network error in {operation_name}: {error}", AiErrorType.NETWORK_ERROR, True
        )
    if isinstance(error, PermissionError):
        return AiOperationError(
            f"Authentication failed for {provider_key}", AiErrorType.AUTHENTICATION_ERROR
        )
    if isinstance(error, (ValueError, TypeError)):
        return AiOperationError(
            f"Invalid argument in {operation_name}: {error}", AiErrorType.VALIDATION_ERROR
        )
    if isinstance(error, RuntimeError):
        return AiOperationError(
            f"Invalid operation {operation_name}: {error}", AiErrorType.CONFIGURATION_ERROR
        )
    return AiOperationError(
        f"Unexpected error in {operation_name}: {error}", AiErrorType.UNKNOWN_ERROR
    )
