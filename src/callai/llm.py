import json
import logging
from typing import AsyncIterator

import httpx

logger = logging.getLogger(__name__)

CHAT_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIChatLLM:
    """Chat-completions client with a full-text mode and a token-streaming mode.

    ``generate_reply`` is what the turn processor calls.  With ``stream=True``
    it assembles the reply from ``stream_reply`` deltas; otherwise it makes a
    single non-streaming request.  Either way the caller gets the full text.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.7,
        max_tokens: int = 150,
        stream: bool = False,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.stream = stream
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self._client.aclose()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _body(self, messages: list[dict], **overrides) -> dict:
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        body.update(overrides)
        return body

    async def complete(self, messages: list[dict], **overrides) -> str:
        resp = await self._client.post(CHAT_URL, headers=self._headers(), json=self._body(messages, **overrides))
        resp.raise_for_status()
        content = resp.json()["choices"][0]["message"].get("content") or ""
        return content.strip()

    async def stream_reply(self, messages: list[dict]) -> AsyncIterator[str]:
        """Yield content deltas as they arrive over server-sent events."""
        async with self._client.stream(
            "POST", CHAT_URL, headers=self._headers(), json=self._body(messages, stream=True),
        ) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[len("data: "):].strip()
                if data == "[DONE]":
                    return
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    continue
                choices = chunk.get("choices") or [{}]
                delta = choices[0].get("delta", {}).get("content")
                if delta:
                    yield delta

    async def generate_reply(self, messages: list[dict]) -> str:
        if not self.stream:
            return await self.complete(messages)
        parts = []
        async for delta in self.stream_reply(messages):
            parts.append(delta)
        return "".join(parts).strip()
