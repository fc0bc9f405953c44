"""
LLM Gateway

Single entry point for language model calls. Talks to Anthropic, OpenAI or
a local Ollama over plain HTTP and tallies token usage per run.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ..config import LLMSettings

# Configure logging
logger = logging.getLogger(__name__)


ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_OLLAMA_URL = "http://localhost:11434"


class LLMProvider(Enum):
    """Supported model providers"""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


DEFAULT_MODELS = {
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.OLLAMA: "llama3.2:3b",
}


@dataclass
class LLMRequest:
    """A request for a structured model decision"""
    request_type: str  # classify, navigation, click, form, assertion, intent
    prompt: str
    system: str = ""
    max_tokens: Optional[int] = None


@dataclass
class LLMResponse:
    """Response from the model"""
    success: bool
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    error: Optional[str] = None

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class TokenUsage:
    """Token tally for a run"""
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, request_type: str, response: LLMResponse):
        self.calls += 1
        self.input_tokens += response.input_tokens
        self.output_tokens += response.output_tokens
        self.by_type[request_type] = self.by_type.get(request_type, 0) + response.tokens_used

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "calls": self.calls,
            "by_type": dict(self.by_type),
        }


class LLMGateway:
    """
    Gatekeeper for model API calls.

    Responsibilities:
    - Provider-specific HTTP calls
    - Token usage tracking
    - Converting transport failures into unsuccessful responses
    """

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or LLMSettings()
        self.provider = LLMProvider(self.settings.provider)
        self.model = self.settings.model or DEFAULT_MODELS[self.provider]
        self._transport = transport

        self.usage = TokenUsage()
        self.failed_calls = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.timeout_s, transport=self._transport)

    async def request(self, request: LLMRequest) -> LLMResponse:
        """
        Make a model call.

        Failures are returned as LLMResponse(success=False) rather than raised.
        """
        start_time = time.time()
        try:
            if self.provider == LLMProvider.ANTHROPIC:
                response = await self._call_anthropic(request)
            elif self.provider == LLMProvider.OPENAI:
                response = await self._call_openai(request)
            else:
                response = await self._call_ollama(request)
        except httpx.HTTPError as e:
            logger.error(f"[AI-GATE] {self.provider.value} call failed: {e}")
            response = LLMResponse(success=False, content="", error=str(e))
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            # 200 with a body that is not the provider's JSON shape
            logger.error(f"[AI-GATE] {self.provider.value} returned a malformed reply: {e!r}")
            response = LLMResponse(success=False, content="", error=f"Malformed response: {e!r}")

        response.latency_ms = int((time.time() - start_time) * 1000)
        if response.success:
            self.usage.add(request.request_type, response)
            logger.debug(
                f"[AI-GATE] {request.request_type}: {response.tokens_used} tokens in {response.latency_ms}ms"
            )
        else:
            self.failed_calls += 1
            logger.warning(f"[AI-GATE] {request.request_type} failed: {response.error}")
        return response

    async def _call_anthropic(self, request: LLMRequest) -> LLMResponse:
        """Call the Anthropic Messages API"""
        if not self.settings.api_key:
            return LLMResponse(success=False, content="", error="ANTHROPIC_API_KEY not set")

        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens or self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system:
            payload["system"] = request.system

        async with self._client() as client:
            response = await client.post(
                self.settings.base_url or ANTHROPIC_URL,
                headers={
                    "x-api-key": self.settings.api_key,
                    "anthropic-version": "2023-06-01",
                    "content-type": "application/json"
                },
                json=payload
            )

        if response.status_code != 200:
            return LLMResponse(success=False, content="", error=f"API error: {response.status_code}")

        data = response.json()
        content = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage", {})
        return LLMResponse(
            success=True,
            content=content,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0)
        )

    async def _call_openai(self, request: LLMRequest) -> LLMResponse:
        """Call the OpenAI Chat Completions API"""
        if not self.settings.api_key:
            return LLMResponse(success=False, content="", error="OPENAI_API_KEY not set")

        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt})

        async with self._client() as client:
            response = await client.post(
                self.settings.base_url or OPENAI_URL,
                headers={
                    "Authorization": f"Bearer {self.settings.api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "model": self.model,
                    "messages": messages,
                    "max_tokens": request.max_tokens or self.settings.max_tokens,
                    "temperature": self.settings.temperature,
                    "response_format": {"type": "json_object"},
                }
            )

        if response.status_code != 200:
            return LLMResponse(success=False, content="", error=f"API error: {response.status_code}")

        data = response.json()
        usage = data.get("usage", {})
        return LLMResponse(
            success=True,
            content=data["choices"][0]["message"]["content"] or "",
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0)
        )

    async def _call_ollama(self, request: LLMRequest) -> LLMResponse:
        """Call a local Ollama server"""
        base_url = (self.settings.base_url or DEFAULT_OLLAMA_URL).rstrip("/")

        async with self._client() as client:
            response = await client.post(
                f"{base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": request.prompt,
                    "system": request.system,
                    "format": "json",
                    "stream": False,
                    "options": {"temperature": self.settings.temperature},
                }
            )

        if response.status_code != 200:
            return LLMResponse(success=False, content="", error=f"Ollama error: {response.status_code}")

        data = response.json()
        content = data.get("response", "")
        # Older Ollama builds omit the counts; estimate from words
        return LLMResponse(
            success=True,
            content=content,
            input_tokens=data.get("prompt_eval_count", len(request.prompt.split())),
            output_tokens=data.get("eval_count", len(content.split()))
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "model": self.model,
            "failed_calls": self.failed_calls,
            **self.usage.to_dict(),
        }
