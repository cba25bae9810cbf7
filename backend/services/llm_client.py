"""
LLM Client - wraps the OpenAI SDK to talk to an OpenAI-compatible llama-server.

Response format:
    {"message": {"role": "assistant", "content": "...", "thinking": "..."}}

Key translations:
- Thinking: <think>...</think> inline tags -> separate "thinking" field
- Options: num_predict/max_tokens -> max_tokens, top_k -> extra_body (llama-server extension)
- Availability: /health status codes -> available / downloading / downloadable / unavailable
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from openai import OpenAI

from errors import StatusPollError

logger = logging.getLogger(__name__)

AVAILABLE = "available"
DOWNLOADING = "downloading"
DOWNLOADABLE = "downloadable"
UNAVAILABLE = "unavailable"


def _extract_thinking(content: str) -> tuple:
    """Extract <think>...</think> tags from content.

    llama-server returns thinking inline in content as <think> tags.

    Returns:
        (clean_content, thinking_text)
    """
    if not content:
        return "", ""

    think_pattern = re.compile(r"<think>(.*?)</think>", re.DOTALL)
    thinking_parts = think_pattern.findall(content)
    thinking = "\n".join(thinking_parts).strip()

    clean = think_pattern.sub("", content).strip()
    return clean, thinking


class LanguageSession:
    """
    Stateful conversation with the model.

    Keeps the system prompt and every exchanged message so follow-up prompts
    see the whole session. A failed prompt leaves the history unchanged.
    """

    def __init__(
        self,
        client: "LLMClient",
        system_prompt: str,
        temperature: float = 0.7,
        top_k: int = 3,
        max_tokens: Optional[int] = None,
    ):
        self._client = client
        self.temperature = temperature
        self.top_k = top_k
        self.max_tokens = max_tokens
        self.messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]

    def prompt(self, text: str, format: Optional[str] = None) -> str:
        """Send one user prompt and return the assistant reply text (blocking)."""
        self.messages.append({"role": "user", "content": text})
        options: Dict[str, Any] = {"temperature": self.temperature, "top_k": self.top_k}
        if self.max_tokens:
            options["max_tokens"] = self.max_tokens

        try:
            result = self._client.chat(messages=self.messages, options=options, format=format)
        except Exception:
            self.messages.pop()
            raise

        content = result["message"]["content"]
        self.messages.append({"role": "assistant", "content": content})
        return content

    def reset(self) -> None:
        """Forget exchanged messages, keeping the system prompt."""
        self.messages = self.messages[:1]


class LLMClient:
    """Wraps OpenAI SDK pointing at a llama-server instance."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 180.0,
        model: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: llama-server URL (e.g., "http://localhost:8081")
            timeout: Request timeout in seconds
            model: Model name sent with requests (the server slot decides the real model)
            transport: Optional httpx transport for the health check
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._timeout = timeout
        self._transport = transport
        self._openai = OpenAI(
            base_url=f"{self.base_url}/v1",
            api_key="not-needed",  # llama-server doesn't require auth
            timeout=timeout,
        )

    async def availability(self, timeout: float = 3.0) -> str:
        """
        Report backend readiness from the /health endpoint.

        200 -> available, 503 while loading -> downloading,
        404 -> downloadable, anything else -> unavailable.

        Raises:
            StatusPollError: the server could not be reached (it may still be booting)
        """
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            logger.debug(f"LLM health check failed: {e}")
            raise StatusPollError(
                "LLM health check failed", details=str(e), endpoint="/health"
            ) from e

        if resp.status_code == 200:
            return AVAILABLE
        if resp.status_code == 503 and "loading" in resp.text.lower():
            return DOWNLOADING
        if resp.status_code == 404:
            return DOWNLOADABLE
        return UNAVAILABLE

    async def initialize(self) -> Dict[str, Any]:
        """Probe the backend and return its capabilities."""
        status = await self.availability()
        return {
            "available": status,
            "model": self.model or "default",
            "base_url": self.base_url,
        }

    def create_session(
        self,
        system_prompt: str,
        temperature: float = 0.7,
        top_k: int = 3,
        max_tokens: Optional[int] = None,
    ) -> LanguageSession:
        return LanguageSession(
            self,
            system_prompt=system_prompt,
            temperature=temperature,
            top_k=top_k,
            max_tokens=max_tokens,
        )

    def chat(
        self,
        messages: List[Dict] = None,
        options: Optional[Dict] = None,
        format: str = None,
    ) -> Dict[str, Any]:
        """Call the chat completions endpoint (blocking).

        Args:
            messages: List of {"role", "content"} dicts
            options: Generation options (temperature, top_k, max_tokens, num_predict)
            format: Response format ("json" for JSON mode)

        Returns:
            dict with "message" key
        """
        messages = messages or []
        options = options or {}

        kwargs: Dict[str, Any] = {
            "model": self.model or "default",
            "messages": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
        }

        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if "top_p" in options:
            kwargs["top_p"] = options["top_p"]
        if "num_predict" in options:
            kwargs["max_tokens"] = options["num_predict"]
        elif "max_tokens" in options:
            kwargs["max_tokens"] = options["max_tokens"]
        if "top_k" in options:
            kwargs["extra_body"] = {"top_k": options["top_k"]}

        if format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        response = self._openai.chat.completions.create(stream=False, **kwargs)

        raw_content = response.choices[0].message.content or ""
        content, thinking = _extract_thinking(raw_content)

        result = {
            "message": {
                "role": "assistant",
                "content": content,
            }
        }
        if thinking:
            result["message"]["thinking"] = thinking

        return result
