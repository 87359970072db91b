"""
LLM Service - model-completion provider for the edit engine

Streams response text from Gemini, OpenAI or a vLLM (OpenAI-compatible)
endpoint. Used for the original request and for every repair retry.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp

logger = logging.getLogger(__name__)


class LLMServiceError(Exception):
    """Provider returned an error or an unusable response"""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class LLMService:
    """Service for interacting with various LLM providers"""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.provider = config.get("provider", "gemini")

    # ========== Config Helpers ==========

    def _get_gemini_config(self) -> tuple[str, str, str]:
        """Get Gemini config: (api_key, model, base_url). Raises if api_key missing."""
        cfg = self.config.get("gemini", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise ValueError("Gemini API key not configured")
        model = cfg.get("model", "gemini-2.5-flash")
        base_url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}"
        return api_key, model, base_url

    def _get_openai_config(self) -> tuple[str, str, dict[str, str]]:
        """Get OpenAI config: (model, url, headers). Raises if api_key missing."""
        cfg = self.config.get("openai", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise ValueError("OpenAI API key not configured")
        model = cfg.get("model", "gpt-4o")
        url = "https://api.openai.com/v1/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return model, url, headers

    def _get_vllm_config(self) -> tuple[str, str, dict[str, str]]:
        """Get vLLM config: (model, url, headers)."""
        cfg = self.config.get("vllm", {})
        endpoint = cfg.get("endpoint", "http://localhost:8000").rstrip("/")
        model = cfg.get("model", "default")
        url = f"{endpoint}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        if cfg.get("apiKey"):
            headers["Authorization"] = f"Bearer {cfg['apiKey']}"
        return model, url, headers

    # ========== Payload Builders ==========

    def _build_openai_payload(
        self,
        model: str,
        prompt: str,
        max_tokens: int = 8192,
        temperature: float = 0.0,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Build OpenAI-compatible request payload"""
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": stream,
        }

    def _build_gemini_payload(self, prompt: str, max_output_tokens: int = 32768) -> dict[str, Any]:
        """Build Gemini API request payload"""
        cfg = self.config.get("gemini", {})
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": cfg.get("temperature", 0.1),
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
            },
        }

    # ========== HTTP ==========

    async def _retry_with_backoff(self, operation, max_retries: int = 3, provider: str = "API"):
        """Execute operation with exponential backoff on timeouts, 429 and 503"""
        for attempt in range(max_retries):
            try:
                return await operation()
            except asyncio.TimeoutError:
                if attempt < max_retries - 1:
                    wait_time = (2**attempt) * 3
                    logger.warning(
                        "%s request timeout. Retrying in %ss (attempt %d/%d)",
                        provider, wait_time, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise LLMServiceError(f"{provider} request timeout after {max_retries} retries")
            except LLMServiceError as e:
                if e.status in (429, 503) and attempt < max_retries - 1:
                    wait_time = (2**attempt) * 5
                    logger.warning(
                        "%s returned %s. Retrying in %ss (attempt %d/%d)",
                        provider, e.status, wait_time, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise
            except aiohttp.ClientError as e:
                if attempt < max_retries - 1:
                    wait_time = (2**attempt) * 2
                    logger.warning(
                        "%s network error: %s. Retrying in %ss (attempt %d/%d)",
                        provider, e, wait_time, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise LLMServiceError(f"{provider} network error: {e}") from e

    @asynccontextmanager
    async def _request(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout_seconds: int = 60,
        provider: str = "API",
    ):
        """Context manager for HTTP POST requests with automatic session cleanup"""
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("%s API error (%s): %s", provider, response.status, error_text)
                    raise LLMServiceError(f"{provider} API error ({response.status}): {error_text}", response.status)
                yield response

    async def _request_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        provider: str = "API",
    ) -> dict[str, Any]:
        async def _execute():
            async with self._request(url, payload, headers, provider=provider) as response:
                return await response.json()

        return await self._retry_with_backoff(_execute, provider=provider)

    async def _stream_response(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None, provider: str, line_parser
    ) -> AsyncIterator[str]:
        """Stream an SSE response and yield parsed text deltas"""
        async with self._request(url, payload, headers, timeout_seconds=600, provider=provider) as response:
            async for line in response.content:
                content = line_parser(line.decode("utf-8").strip())
                if content:
                    yield content

    # ========== Response Parsers ==========

    def _parse_openai_response(self, data: dict[str, Any]) -> str:
        """Parse OpenAI-compatible response format"""
        if data.get("choices"):
            choice = data["choices"][0]
            if "message" in choice and "content" in choice["message"]:
                return choice["message"]["content"]
            if "text" in choice:
                return choice["text"]
        raise LLMServiceError("No valid response from API")

    def _extract_gemini_text(self, data: dict[str, Any]) -> str | None:
        """Extract text from Gemini response data"""
        if data.get("candidates"):
            parts = data["candidates"][0].get("content", {}).get("parts", [])
            texts = [part["text"] for part in parts if "text" in part and not part.get("thought")]
            if texts:
                return "".join(texts)
        return None

    def _parse_gemini_response(self, data: dict[str, Any]) -> str:
        text = self._extract_gemini_text(data)
        if text is not None:
            return text
        raise LLMServiceError("No valid response from Gemini API")

    def _parse_sse_line(self, line_text: str, extractor) -> str | None:
        """Parse SSE line with given extractor function"""
        if not line_text.startswith("data: "):
            return None
        data_str = line_text[6:]
        if data_str == "[DONE]":
            return None
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE line: %s", data_str[:200])
            return None
        return extractor(data)

    def _extract_openai_delta(self, data: dict[str, Any]) -> str | None:
        if data.get("choices"):
            delta = data["choices"][0].get("delta", {})
            return delta.get("content", "") or None
        return None

    def _parse_openai_stream_line(self, line_text: str) -> str | None:
        return self._parse_sse_line(line_text, self._extract_openai_delta)

    def _parse_gemini_stream_line(self, line_text: str) -> str | None:
        return self._parse_sse_line(line_text, self._extract_gemini_text)

    # ========== Public API ==========

    async def complete(self, prompt: str) -> AsyncIterator[str]:
        """Stream the model's response to ``prompt`` as text chunks"""
        if self.provider == "gemini":
            api_key, model, base_url = self._get_gemini_config()
            url = f"{base_url}:streamGenerateContent?key={api_key}&alt=sse"
            payload = self._build_gemini_payload(prompt)
            headers = None
            parser = self._parse_gemini_stream_line
        elif self.provider in ("openai", "vllm"):
            if self.provider == "openai":
                model, url, headers = self._get_openai_config()
            else:
                model, url, headers = self._get_vllm_config()
            payload = self._build_openai_payload(model, prompt, stream=True)
            parser = self._parse_openai_stream_line
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

        logger.info("Streaming completion from %s (%s)", self.provider, model)
        total = 0
        async for chunk in self._stream_response(url, payload, headers, self.provider, parser):
            total += len(chunk)
            yield chunk
        logger.info("Completion from %s finished (%d chars)", self.provider, total)

    async def generate_response(self, prompt: str) -> str:
        """Non-streaming completion, used to validate provider settings"""
        if self.provider == "gemini":
            api_key, model, base_url = self._get_gemini_config()
            url = f"{base_url}:generateContent?key={api_key}"
            data = await self._request_json(url, self._build_gemini_payload(prompt), provider="Gemini")
            return self._parse_gemini_response(data)
        if self.provider == "vllm":
            model, url, headers = self._get_vllm_config()
        elif self.provider == "openai":
            model, url, headers = self._get_openai_config()
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")
        payload = self._build_openai_payload(model, prompt, max_tokens=256)
        data = await self._request_json(url, payload, headers, provider=self.provider)
        return self._parse_openai_response(data)
