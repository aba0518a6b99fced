from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

import settings
from errors import RelayError, UpstreamRejected, UpstreamUnavailable

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response generated."


class ChatClient:
    def __init__(self, api_key: str | None = None, model: str | None = None, base_url: str | None = None, client: httpx.AsyncClient | None = None):
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.timeout = settings.OPENAI_TIMEOUT_MS / 1000.0
        self.http_client = client or httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def request_body(self, messages: list[dict[str, Any]], stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {"model": self.model, "messages": messages, "max_tokens": settings.OPENAI_MAX_TOKENS, "temperature": 0.7}
        if stream:
            body["stream"] = True
        return body

    def headers(self) -> dict[str, str]:
        if not self.api_key:
            raise UpstreamUnavailable("OPENAI_API_KEY is missing on the server. Add it to your .env file.", status=503)
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    @staticmethod
    def rejection(status_code: int, body: str) -> RelayError:
        if status_code == 429:
            return UpstreamRejected("AI rate limit reached. Please wait a moment.", status=429, category="rate-limited", body=body)
        if status_code >= 500:
            return UpstreamUnavailable(f"AI provider error ({status_code}).", body=body)
        return UpstreamRejected(f"AI provider rejected the request ({status_code}).", body=body)

    async def complete(self, messages: list[dict[str, Any]]) -> str:
        headers = self.headers()
        try:
            response = await self.http_client.post(f"{self.base_url}/chat/completions", headers=headers, content=json.dumps(self.request_body(messages, False)), timeout=self.timeout)
        except httpx.TimeoutException as error:
            raise UpstreamUnavailable("AI request timed out. Try again.", status=504) from error
        except httpx.HTTPError as error:
            raise UpstreamUnavailable(f"AI provider unreachable ({error.__class__.__name__}).") from error
        if response.status_code >= 400:
            raise self.rejection(response.status_code, response.text)
        try:
            parsed = response.json()
        except ValueError as error:
            raise UpstreamUnavailable("AI provider returned malformed JSON.") from error
        choices = parsed.get("choices") if isinstance(parsed, dict) else None
        message = (choices[0] or {}).get("message") if isinstance(choices, list) and choices else None
        return str((message or {}).get("content") or "").strip() or NO_RESPONSE

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        headers = self.headers()
        try:
            async with self.http_client.stream("POST", f"{self.base_url}/chat/completions", headers=headers, content=json.dumps(self.request_body(messages, True)), timeout=self.timeout) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self.rejection(response.status_code, body)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        return
                    try:
                        chunk = json.loads(data)
                    except ValueError:
                        logger.warning("Skipping undecodable stream chunk: %.80s", data)
                        continue
                    choices = chunk.get("choices") if isinstance(chunk, dict) else None
                    delta = ((choices[0] or {}).get("delta") or {}).get("content") if isinstance(choices, list) and choices else None
                    if delta:
                        yield delta
        except httpx.TimeoutException as error:
            raise UpstreamUnavailable("AI stream timed out.", status=504) from error
        except httpx.HTTPError as error:
            raise UpstreamUnavailable(f"AI stream interrupted ({error.__class__.__name__}).") from error
        raise UpstreamUnavailable("AI stream ended before completion.")
