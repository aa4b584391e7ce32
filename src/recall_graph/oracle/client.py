from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..errors import OracleError
from .http import HttpClientFactory, transient_retry


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    system_prompt: str
    user_prompt: str
    temperature: float = 0.1
    max_tokens: int = 2000
    response_format: str = "json"


class CompletionClient(Protocol):
    """The language-model boundary: one request in, raw text out.

    Implementations raise OracleError on transport/auth/quota failures.
    """

    async def complete(self, request: CompletionRequest) -> str: ...


class ChatCompletionClient:
    """OpenAI-compatible /chat/completions client (OpenRouter, OpenAI, vLLM...)."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout_s: float = 60.0,
        max_attempts: int = 1,
        http: httpx.AsyncClient | None = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.model = model
        self.max_attempts = max_attempts
        self._owns_http = http is None
        self._http = http or HttpClientFactory.client(base_url, headers, read_timeout_s=timeout_s)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _body(self, request: CompletionRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.response_format == "json":
            body["response_format"] = {"type": "json_object"}
        return body

    async def complete(self, request: CompletionRequest) -> str:
        body = self._body(request)
        try:
            async for attempt in transient_retry(self.max_attempts):
                with attempt:
                    resp = await self._http.post("/chat/completions", json=body)
        except httpx.HTTPError as e:
            raise OracleError(f"completion transport failed: {e}") from e

        if resp.status_code >= 400:
            raise OracleError(f"completion failed with HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise OracleError("completion envelope is not JSON") from e

        return message_text(data)


def message_text(data: Any) -> str:
    """Text of `choices[0].message.content`; "" for any shape it cannot read.

    Content given as a list of parts has its text parts joined.
    """
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [p.get("text") for p in content if isinstance(p, dict)]
        return "".join(p for p in parts if isinstance(p, str))
    return ""
