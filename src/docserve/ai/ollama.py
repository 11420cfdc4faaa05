"""Ollama-backed text generation provider."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Generation provider talking to a local Ollama server over HTTP.

    Errors are raised, not swallowed: the middleware classifies and retries
    them.
    """

    DEFAULT_URL = "http://localhost:11434"
    DEFAULT_MODEL = "llama3.2"

    provider_type = "ollama"
    provider_name = "Ollama"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = (base_url or self.DEFAULT_URL).rstrip("/")
        self._model = model or self.DEFAULT_MODEL
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def current_model(self) -> str:
        return self._model

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(f"{self._base_url}/api/tags")
        except httpx.HTTPError as exc:
            logger.debug(f"Ollama not reachable at {self._base_url}: {exc}")
            return False
        return response.is_success

    async def list_models(self) -> list[str]:
        response = await self._client.get(f"{self._base_url}/api/tags")
        response.raise_for_status()
        return [m["name"] for m in response.json().get("models", []) if "name" in m]

    async def generate(
        self, prompt: str, context: Optional[str] = None, temperature: float = 0.7
    ) -> str:
        full_prompt = f"Context: {context}\n\nQuestion: {prompt}" if context else prompt
        payload = {
            "model": self._model,
            "prompt": full_prompt,
            "stream": False,
            "options": {"temperature": temperature, "top_p": 0.9, "top_k": 40},
        }
        logger.debug(f"Sending request to Ollama: {self._base_url}/api/generate")
        response = await self._client.post(f"{self._base_url}/api/generate", json=payload)
        response.raise_for_status()
        body = response.json()
        if "response" not in body:
            raise RuntimeError("Invalid response format from Ollama")
        return body["response"]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
