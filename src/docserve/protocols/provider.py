"""Protocol for text-generation backends."""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class AiProvider(Protocol):
    """Protocol for AI providers (Ollama, LM Studio, hosted APIs).

    ``generate`` is fallible and only ever called through the
    AI operation middleware.
    """

    @property
    def provider_type(self) -> str:
        ...

    @property
    def provider_name(self) -> str:
        ...

    @property
    def current_model(self) -> str:
        ...

    @property
    def base_url(self) -> str:
        ...

    async def is_available(self) -> bool:
        ...

    async def generate(
        self, prompt: str, context: Optional[str] = None, temperature: float = 0.7
    ) -> str:
        ...

    async def aclose(self) -> None:
        ...
