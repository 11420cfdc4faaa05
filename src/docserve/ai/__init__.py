"""AI backends and the middleware that guards every call to them."""

from docserve.ai.errors import AiErrorType, AiOperationError, classify_exception
from docserve.ai.middleware import (
    AiOperationContext,
    AiOperationMiddleware,
    AiOperationResult,
    AiOperationStatistics,
)
from docserve.ai.ollama import OllamaProvider
from docserve.ai.providers import ProviderHandle

__all__ = [
    "AiErrorType",
    "AiOperationError",
    "classify_exception",
    "AiOperationContext",
    "AiOperationMiddleware",
    "AiOperationResult",
    "AiOperationStatistics",
    "OllamaProvider",
    "ProviderHandle",
]
