"""
Supermom Assistant — LLM Provider Abstraction.

The classifier talks to one function, `complete()`, which forwards a
CompletionRequest to whichever provider LLM_PROVIDER names. Supported:
gemini (default), anthropic, openai, cohere. SDKs are imported lazily so
only the selected provider's package has to be importable at call time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple

logger = logging.getLogger(__name__)


class LLMNotConfiguredError(RuntimeError):
    """Raised when no API key is configured for the LLM provider."""


@dataclass(frozen=True)
class CompletionRequest:
    system: str
    user_message: str
    max_tokens: int = 256
    json_mode: bool = False


_CallFn = Callable[[str, str, CompletionRequest], Awaitable[str]]


class _Provider(NamedTuple):
    call: _CallFn
    default_model: str


# ---------------------------------------------------------------------------
# Provider calls: (api_key, model, request) -> response text
# ---------------------------------------------------------------------------


async def _call_gemini(api_key: str, model: str, request: CompletionRequest) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    generation = {"max_output_tokens": request.max_tokens}
    if request.json_mode:
        generation["response_mime_type"] = "application/json"

    gm = genai.GenerativeModel(model_name=model, system_instruction=request.system)
    response = await gm.generate_content_async(
        request.user_message,
        generation_config=genai.types.GenerationConfig(**generation),
    )
    return response.text


async def _call_anthropic(api_key: str, model: str, request: CompletionRequest) -> str:
    import anthropic

    # json_mode has no switch here; the system prompt already demands bare JSON
    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=request.max_tokens,
        system=request.system,
        messages=[{"role": "user", "content": request.user_message}],
    )
    return response.content[0].text


def _chat_messages(request: CompletionRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": request.system},
        {"role": "user", "content": request.user_message},
    ]


def _json_format(request: CompletionRequest) -> dict:
    return {"response_format": {"type": "json_object"}} if request.json_mode else {}


async def _call_openai(api_key: str, model: str, request: CompletionRequest) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=request.max_tokens,
        messages=_chat_messages(request),
        **_json_format(request),
    )
    return response.choices[0].message.content


async def _call_cohere(api_key: str, model: str, request: CompletionRequest) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=request.max_tokens,
        messages=_chat_messages(request),
        **_json_format(request),
    )
    return response.message.content[0].text


_PROVIDERS: dict[str, _Provider] = {
    "gemini": _Provider(_call_gemini, "gemini-2.0-flash"),
    "anthropic": _Provider(_call_anthropic, "claude-haiku-4-5-20251001"),
    "openai": _Provider(_call_openai, "gpt-4o-mini"),
    "cohere": _Provider(_call_cohere, "command-a-03-2025"),
}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMClient:
    """A provider bound to its model and API key."""

    def __init__(self, provider: str, api_key: str, model: str = "") -> None:
        name = provider.lower()
        if name not in _PROVIDERS:
            raise ValueError(
                f"Unknown LLM_PROVIDER={name!r}. Supported: {', '.join(_PROVIDERS)}"
            )
        if not api_key:
            raise LLMNotConfiguredError("LLM_API_KEY is not set")

        self.provider = name
        self.model = model or _PROVIDERS[name].default_model
        self._api_key = api_key
        self._call = _PROVIDERS[name].call

    @classmethod
    def from_settings(cls) -> LLMClient:
        from supermom.config import settings

        client = cls(settings.LLM_PROVIDER, settings.LLM_API_KEY, settings.LLM_MODEL)
        logger.info("LLM provider: %s, model: %s", client.provider, client.model)
        return client

    async def complete(self, request: CompletionRequest) -> str:
        return await self._call(self._api_key, self.model, request)


def is_configured() -> bool:
    """True when an API key is available for the configured provider."""
    from supermom.config import settings

    return bool(settings.LLM_API_KEY)


_client: LLMClient | None = None


async def complete(
    system: str, user_message: str, max_tokens: int = 256, json_mode: bool = False,
) -> str:
    """Send a prompt to the configured provider and return the response text.

    With `json_mode`, providers that support it are asked for a JSON object.
    Raises LLMNotConfiguredError without an API key; provider errors
    propagate to the caller.
    """
    global _client

    if _client is None:
        _client = LLMClient.from_settings()

    return await _client.complete(CompletionRequest(system, user_message, max_tokens, json_mode))
