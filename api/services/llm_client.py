"""Async client for a local OpenAI-compatible text-generation server."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from ..schemas.dashboard import SamplingParameters
from .dashboard_errors import BackendError

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "http://127.0.0.1:1234/v1"
DEFAULT_MODEL = "local-gguf"


class TextGenerationBackend(Protocol):
    async def generate(self, prompt: str, sampling: SamplingParameters) -> str:
        ...


def _client() -> AsyncOpenAI:
    base_url = os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL)
    # Local servers ignore the key, but the SDK refuses to start without one.
    api_key = os.getenv("LLM_API_KEY", "not-needed")
    timeout = float(os.getenv("LLM_TIMEOUT", "600"))
    return AsyncOpenAI(base_url=base_url, api_key=api_key, timeout=timeout)


def classify_backend_failure(exc: BaseException) -> BackendError:
    error_msg = str(exc)
    lowered = error_msg.lower()
    error_type = type(exc).__name__

    if "connect" in lowered or error_type == "APIConnectionError":
        return BackendError(f"Local model server unreachable: {error_msg}")
    if "timeout" in lowered or "timed out" in lowered or error_type in {"TimeoutError", "APITimeoutError"}:
        timeout_val = os.getenv("LLM_TIMEOUT", "600")
        return BackendError(
            f"Local model request timed out. Current timeout: {timeout_val}s. "
            f"Consider increasing LLM_TIMEOUT environment variable."
        )
    if "rate_limit" in lowered or error_type == "RateLimitError":
        return BackendError(f"Local model server is busy: {error_msg}")
    return BackendError(f"Local model error: {error_msg}")


class LocalModelBackend:
    """Chat-completions call against mistral.rs, llama.cpp or Ollama style servers."""

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        self._client = client
        self.model = model or os.getenv("LLM_MODEL", DEFAULT_MODEL)
        self.system_prompt = system_prompt

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = _client()
        return self._client

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate(self, prompt: str, sampling: SamplingParameters) -> str:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": self._messages(prompt),
            "temperature": sampling.temperature,
            "top_p": sampling.top_p,
            "max_tokens": sampling.max_tokens,
            "extra_body": {"top_k": sampling.top_k, "repetition_penalty": sampling.repeat_penalty},
        }
        if sampling.seed is not None:
            request["seed"] = sampling.seed
        if sampling.stop:
            request["stop"] = list(sampling.stop)

        try:
            result = await self.client.chat.completions.create(**request)
        except Exception as exc:
            logger.warning("llm_backend_call_failed", extra={"error_type": type(exc).__name__})
            raise classify_backend_failure(exc) from exc

        content = result.choices[0].message.content if result.choices else ""
        return content or ""
