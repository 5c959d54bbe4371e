"""
LLM Gateway — provider-agnostic chat and embedding router.

Providers:
    openai   registered only when OPENAI_API_KEY is set
    local    deterministic stub, always registered (dev/test)

Callers that must not answer with stub text (the chat assistant) check
``has_real_provider`` first, or call ``chat(..., require_real=True)``.

Usage:
    from app.ai.gateway import LLMGateway
    gw = LLMGateway.from_config(app.config)
    result = gw.chat([{"role": "user", "content": "こんにちは"}], temperature=0.3)
"""

import hashlib
import logging
import os
import time
from abc import ABC, abstractmethod

import openai

logger = logging.getLogger(__name__)


class LLMUnavailableError(RuntimeError):
    """No real provider could produce an answer."""


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    is_real = True

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...

    @abstractmethod
    def embed(self, texts: list[str], model: str) -> list[list[float]]:
        ...


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT + Embedding provider."""

    def __init__(self, api_key: str, client=None):
        self.api_key = api_key
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 600),
            temperature=kwargs.get("temperature", 0.3),
        )
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return {
            "content": choice.message.content or "",
            "prompt_tokens": getattr(usage, "prompt_tokens", 0),
            "completion_tokens": getattr(usage, "completion_tokens", 0),
            "model": model,
        }

    def embed(self, texts: list[str], model: str = "text-embedding-3-small") -> list[list[float]]:
        client = self._get_client()
        response = client.embeddings.create(model=model, input=texts)
        return [item.embedding for item in response.data]


# ── Local Stub Provider ───────────────────────────────────────────────────────

class LocalStubProvider(LLMProvider):
    """Offline provider for development and tests."""

    is_real = False

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break
        content = f"[local-stub] {user_msg[:200]}"
        return {
            "content": content,
            "prompt_tokens": len(user_msg) // 4,
            "completion_tokens": len(content) // 4,
            "model": "local-stub",
        }

    def embed(self, texts: list[str], model: str = "local-stub") -> list[list[float]]:
        """Deterministic 64-dim pseudo-embeddings."""
        embeddings = []
        for text in texts:
            h = hashlib.sha512(text.encode("utf-8")).digest()
            embeddings.append([(b - 128) / 256.0 for b in h])
        return embeddings


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Routes by model name, retries transient provider errors with
    exponential backoff and falls back to the local stub when the
    provider for a model is not registered.
    """

    PROVIDER_MAP = {
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        "gpt-4.1-mini": "openai",
        "text-embedding-3-small": "openai",
        "text-embedding-3-large": "openai",
        "local-stub": "local",
    }

    DEFAULT_CHAT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBED_MODEL = "text-embedding-3-small"

    def __init__(self, openai_api_key: str | None = None, chat_model: str | None = None,
                 embed_model: str | None = None, providers: dict | None = None):
        self.chat_model = chat_model or self.DEFAULT_CHAT_MODEL
        self.embed_model = embed_model or self.DEFAULT_EMBED_MODEL
        if providers is not None:
            self._providers = dict(providers)
            self._providers.setdefault("local", LocalStubProvider())
        else:
            self._providers = {"local": LocalStubProvider()}
            key = openai_api_key if openai_api_key is not None else os.getenv("OPENAI_API_KEY", "")
            if key:
                self._providers["openai"] = OpenAIProvider(key)

    @classmethod
    def from_config(cls, config) -> "LLMGateway":
        return cls(
            openai_api_key=config.get("OPENAI_API_KEY") or "",
            chat_model=config.get("LLM_DEFAULT_CHAT_MODEL"),
            embed_model=config.get("LLM_DEFAULT_EMBED_MODEL"),
        )

    @property
    def providers(self) -> list[str]:
        return sorted(self._providers)

    @property
    def has_real_provider(self) -> bool:
        return any(p.is_real for p in self._providers.values())

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        provider_name = self.PROVIDER_MAP.get(model, "local")
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name
        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        max_retries: int = 2,
        require_real: bool = False,
        **kwargs,
    ) -> dict:
        """
        Send a chat completion request with retry.

        Args:
            messages: Chat messages.
            model: Model identifier (defaults to the configured chat model).
            purpose: What the call is for, logged only.
            max_retries: Attempts against the provider.
            require_real: Raise LLMUnavailableError instead of using the stub.
            **kwargs: temperature, max_tokens passed to provider.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}
        """
        model = model or self.chat_model
        provider, provider_name = self._get_provider(model)
        if require_real and not provider.is_real:
            raise LLMUnavailableError(f"No provider registered for model '{model}'")

        last_error = None
        for attempt in range(1, max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
            except openai.OpenAIError as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed: %s", attempt, max_retries, e)
                if attempt < max_retries:
                    time.sleep(min(2 ** (attempt - 1), 4))
                continue
            result["latency_ms"] = int((time.time() - start_time) * 1000)
            result["provider"] = provider_name
            logger.info(
                "LLM call ok purpose=%s provider=%s model=%s tokens=%d latency=%dms",
                purpose or "-", provider_name, model,
                result.get("prompt_tokens", 0) + result.get("completion_tokens", 0),
                result["latency_ms"],
            )
            return result

        raise LLMUnavailableError(f"LLM call failed after {max_retries} attempts: {last_error}")

    def embed(self, texts: list[str], model: str | None = None) -> list[list[float]] | None:
        """Embed texts with a real provider; None when only the stub is available."""
        model = model or self.embed_model
        provider, provider_name = self._get_provider(model)
        if not provider.is_real:
            return None
        try:
            return provider.embed(texts, model)
        except openai.OpenAIError as e:
            logger.warning("Embedding call failed (%s): %s", provider_name, e)
            return None
