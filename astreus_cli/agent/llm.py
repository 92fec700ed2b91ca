"""Streaming chat-completion clients for the supported providers."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
import json
import logging
from typing import Any, Literal, Protocol
from uuid import uuid4

import httpx
from ollama import AsyncClient, ResponseError

from ..exceptions import (
    AstreusError,
    CredentialMissingError,
    ProviderConnectionError,
    ProviderError,
)
from ..providers import BASE_URL_ENV_MAP, DEFAULT_BASE_URLS, get_env_key_name

LOGGER = logging.getLogger(__name__)


@dataclass
class LLMChunk:
    """A single typed piece of a streamed completion."""

    kind: Literal["content", "tool_call"]
    text: str = ""
    tool_name: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)
    call_id: str = ""


class LLMClient(Protocol):
    provider: str
    model: str

    def stream_chat(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[LLMChunk]: ...


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class OllamaLLM:
    """Chat against a local or remote Ollama server."""

    provider = "ollama"

    def __init__(
        self,
        model: str,
        host: str = DEFAULT_BASE_URLS["ollama"],
        timeout: float = 300,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.host = host
        self._client = client or AsyncClient(host=host, timeout=timeout)

    @staticmethod
    def _to_ollama(message: dict[str, Any]) -> dict[str, Any]:
        converted: dict[str, Any] = {
            "role": message["role"],
            "content": message.get("content", ""),
        }
        if message.get("images"):
            converted["images"] = list(message["images"])
        if message.get("tool_calls"):
            converted["tool_calls"] = [
                {"type": "function", "function": {"name": c["name"], "arguments": c["arguments"]}}
                for c in message["tool_calls"]
            ]
        if message["role"] == "tool":
            converted["tool_name"] = message.get("name", "")
        return converted

    @staticmethod
    def _field(chunk: Any, name: str) -> Any:
        message = getattr(chunk, "message", None)
        if message is not None:
            return getattr(message, name, None)
        if isinstance(chunk, Mapping):
            inner = chunk.get("message")
            if isinstance(inner, Mapping):
                return inner.get(name)
        return None

    @staticmethod
    def _parse_tool_call(call: Any) -> tuple[str, dict[str, Any]]:
        fn = getattr(call, "function", None)
        if fn is not None:
            return str(getattr(fn, "name", "") or ""), _parse_arguments(
                getattr(fn, "arguments", None)
            )
        if isinstance(call, Mapping):
            fn_dict = call.get("function") or {}
            return str(fn_dict.get("name", "")), _parse_arguments(fn_dict.get("arguments"))
        return "", {}

    def _map_exception(self, exc: Exception) -> AstreusError:
        if isinstance(exc, AstreusError):
            return exc
        if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.NetworkError)):
            return ProviderConnectionError(f"Unable to connect to Ollama host {self.host}.")
        if isinstance(exc, ResponseError) and exc.status_code in (401, 403):
            return CredentialMissingError(
                f"Ollama host {self.host} rejected the request: invalid API key."
            )
        return ProviderError(f"Ollama request failed for model {self.model!r}: {exc}")

    async def stream_chat(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[LLMChunk]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [self._to_ollama(m) for m in messages],
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools
        try:
            stream = await self._client.chat(**kwargs)
            async for chunk in stream:
                text = self._field(chunk, "content")
                if isinstance(text, str) and text:
                    yield LLMChunk(kind="content", text=text)
                for call in self._field(chunk, "tool_calls") or []:
                    name, args = self._parse_tool_call(call)
                    if name:
                        yield LLMChunk(
                            kind="tool_call",
                            tool_name=name,
                            tool_args=args,
                            call_id=uuid4().hex[:12],
                        )
        except (ResponseError, httpx.HTTPError, ConnectionError) as exc:
            raise self._map_exception(exc) from exc

    async def list_models(self) -> list[str]:
        """Return model names installed on the server."""
        response = await self._client.list()
        models = getattr(response, "models", None)
        if models is None and isinstance(response, Mapping):
            models = response.get("models")
        names: list[str] = []
        for model in models or []:
            value = getattr(model, "model", None) or getattr(model, "name", None)
            if value is None and isinstance(model, Mapping):
                value = model.get("model") or model.get("name")
            if isinstance(value, str) and value.strip():
                names.append(value.strip())
        return names


class OpenAICompatibleLLM:
    """Chat over an OpenAI-style ``/chat/completions`` SSE endpoint.

    OpenAI, Anthropic and Gemini all expose this protocol.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str,
        base_url: str,
        timeout: float = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def _to_openai(message: dict[str, Any]) -> dict[str, Any]:
        converted: dict[str, Any] = {
            "role": message["role"],
            "content": message.get("content", ""),
        }
        if message.get("tool_calls"):
            converted["tool_calls"] = [
                {
                    "id": c["id"],
                    "type": "function",
                    "function": {"name": c["name"], "arguments": json.dumps(c["arguments"])},
                }
                for c in message["tool_calls"]
            ]
        if message["role"] == "tool":
            converted["tool_call_id"] = message.get("tool_call_id", "")
        return converted

    def _raise_for_status(self, response: httpx.Response, body: str) -> None:
        if response.status_code in (401, 403):
            raise CredentialMissingError(
                f"Invalid API key for {self.provider} ({response.status_code}): {body[:200]}"
            )
        if response.status_code >= 400:
            raise ProviderError(
                f"{self.provider} request failed ({response.status_code}): {body[:200]}"
            )

    async def stream_chat(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> AsyncIterator[LLMChunk]:
        if not self._api_key:
            raise CredentialMissingError(
                f"Missing API key for {self.provider}: set {get_env_key_name(self.provider)}"
            )
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [self._to_openai(m) for m in messages],
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
        headers = {"Authorization": f"Bearer {self._api_key}"}
        pending: dict[int, dict[str, Any]] = {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload, headers=headers
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        self._raise_for_status(response, body)
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data or data == "[DONE]":
                            continue
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            LOGGER.debug(
                                "llm.stream.bad_event",
                                extra={"event": "llm.stream.bad_event", "provider": self.provider},
                            )
                            continue
                        for choice in event.get("choices") or []:
                            delta = choice.get("delta") or {}
                            text = delta.get("content")
                            if isinstance(text, str) and text:
                                yield LLMChunk(kind="content", text=text)
                            for call in delta.get("tool_calls") or []:
                                slot = pending.setdefault(
                                    int(call.get("index", 0)),
                                    {"id": "", "name": "", "arguments": ""},
                                )
                                slot["id"] = call.get("id") or slot["id"]
                                fn = call.get("function") or {}
                                slot["name"] = fn.get("name") or slot["name"]
                                slot["arguments"] += fn.get("arguments") or ""
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.NetworkError) as exc:
            raise ProviderConnectionError(
                f"Unable to connect to {self.provider} at {self.base_url}."
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.provider} request failed: {exc}") from exc
        for index in sorted(pending):
            slot = pending[index]
            if slot["name"]:
                yield LLMChunk(
                    kind="tool_call",
                    tool_name=slot["name"],
                    tool_args=_parse_arguments(slot["arguments"]),
                    call_id=slot["id"] or uuid4().hex[:12],
                )


class LLMFactory:
    """Build and cache one client per (provider, model) pair."""

    def __init__(
        self,
        environ: Mapping[str, str],
        timeout: float = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._environ = environ
        self._timeout = timeout
        self._transport = transport
        self._instances: dict[tuple[str, str], LLMClient] = {}

    def _base_url(self, provider: str) -> str:
        return self._environ.get(BASE_URL_ENV_MAP[provider], "") or DEFAULT_BASE_URLS[provider]

    def get(self, provider: str, model: str) -> LLMClient:
        key = (provider, model)
        if key not in self._instances:
            self._instances[key] = self._build(provider, model)
        return self._instances[key]

    def _build(self, provider: str, model: str) -> LLMClient:
        if provider == "ollama":
            host = (
                self._environ.get("OLLAMA_HOST", "")
                or self._environ.get("OLLAMA_BASE_URL", "")
                or DEFAULT_BASE_URLS["ollama"]
            )
            return OllamaLLM(model=model, host=host, timeout=self._timeout)
        if provider not in BASE_URL_ENV_MAP:
            raise ProviderError(f"Unknown provider {provider!r}.")
        return OpenAICompatibleLLM(
            provider=provider,
            model=model,
            api_key=self._environ.get(get_env_key_name(provider), ""),
            base_url=self._base_url(provider),
            timeout=self._timeout,
            transport=self._transport,
        )

    def clear(self) -> None:
        """Forget every cached client so new credentials are read."""
        self._instances.clear()
        LOGGER.info("llm.instances.cleared", extra={"event": "llm.instances.cleared"})
