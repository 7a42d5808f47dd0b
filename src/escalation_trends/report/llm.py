from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from escalation_trends.config import AppConfig

MOCK_NARRATIVE = "- Mock provider in use; no model narrative was generated."


class LLMError(RuntimeError):
    """Raised when the LLM client cannot produce a valid response."""


class LLMProvider:
    """Abstract provider interface.

    ``complete`` receives a payload with ``model``, ``prompt``,
    ``temperature``, ``max_output_tokens`` and ``response_format``
    (``"json"`` or ``"text"``) and returns a mapping whose ``content`` key
    holds the model output.
    """

    def complete(
        self, payload: Dict[str, Any]
    ) -> Dict[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class MockProvider(LLMProvider):
    response: Dict[str, Any]
    fail: bool = False
    _called: int = 0
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    text_response: Optional[Dict[str, Any]] = None

    def complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._called += 1
        self.payloads.append(payload)
        if self.fail:
            raise ValueError("Mock provider failure")
        if payload.get("response_format") == "text" and self.text_response is not None:
            return self.text_response
        return self.response


class OpenAIChatProvider(LLMProvider):
    """Chat-completions provider for OpenAI-compatible HTTP endpoints."""

    def __init__(self, api_key: str, base_url: str, timeout_s: float) -> None:
        if not api_key:
            raise ValueError("api_key must be provided")
        self.api_key = api_key
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.timeout_s = timeout_s

    def complete(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": payload["model"],
            "messages": [{"role": "user", "content": payload["prompt"]}],
            "temperature": payload["temperature"],
            "max_tokens": payload["max_output_tokens"],
        }
        if payload.get("response_format") == "json":
            body["response_format"] = {"type": "json_object"}
        response = requests.post(
            self.url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=body,
            timeout=self.timeout_s,
        )
        response.raise_for_status()
        data = response.json()
        return {"content": data["choices"][0]["message"]["content"]}


class LLMClient:
    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        max_output_tokens: int,
        cache_dir: Path | str = Path(".cache/llm"),
        cache_enabled: bool = False,
    ) -> None:
        self.provider = provider
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.cache_dir = Path(cache_dir)
        self.cache_enabled = cache_enabled
        if self.cache_enabled:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    def json_complete(self, prompt: str, temperature: float) -> Dict[str, Any]:
        cache_path = self._cache_path("json", prompt, temperature)
        cached = self._read_cache(cache_path)
        if cached is not None:
            return cached

        content = self._invoke_provider(prompt, temperature, "json")
        parsed = self._validate_json(content)
        self._write_cache(cache_path, parsed)
        return parsed

    def text_complete(self, prompt: str, temperature: float) -> str:
        cache_path = self._cache_path("text", prompt, temperature)
        cached = self._read_cache(cache_path)
        if cached is not None:
            return str(cached.get("text", ""))

        content = self._invoke_provider(prompt, temperature, "text")
        if not isinstance(content, str):
            raise LLMError("LLM response missing text content")
        self._write_cache(cache_path, {"text": content})
        return content

    def _invoke_provider(
        self, prompt: str, temperature: float, response_format: str
    ) -> Any:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "temperature": temperature,
            "max_output_tokens": self.max_output_tokens,
            "response_format": response_format,
        }
        try:
            result = self.provider.complete(payload)
        except Exception as exc:
            raise LLMError(f"Provider error: {exc}") from exc

        if not isinstance(result, dict):
            raise LLMError("LLM response must be a JSON object")
        return result.get("content")

    def _cache_path(self, kind: str, prompt: str, temperature: float) -> Optional[Path]:
        if not self.cache_enabled:
            return None
        raw = f"{kind}|{self.model}|{temperature}|{prompt}".encode("utf-8")
        digest = hashlib.sha256(raw).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def _read_cache(self, cache_path: Optional[Path]) -> Optional[Dict[str, Any]]:
        if cache_path is None:
            return None
        try:
            cached = json.loads(cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            # missing or corrupt entries are misses
            return None
        return cached if isinstance(cached, dict) else None

    def _write_cache(self, cache_path: Optional[Path], payload: Dict[str, Any]) -> None:
        if cache_path is None:
            return
        cache_path.write_text(json.dumps(payload, sort_keys=True), encoding="utf-8")

    def _validate_json(self, content: Any) -> Dict[str, Any]:
        if isinstance(content, dict):
            return content
        if isinstance(content, str):
            try:
                parsed = json.loads(content)
            except json.JSONDecodeError as exc:
                raise LLMError(f"Response content not valid JSON: {exc}") from exc
            if not isinstance(parsed, dict):
                raise LLMError("Response content must be a JSON object")
            return parsed
        raise LLMError("LLM response missing JSON content")


def build_llm_client(
    config: AppConfig,
    api_key: Optional[str],
    provider: Optional[LLMProvider] = None,
) -> Optional[LLMClient]:
    """Return a client for the configured provider, or None without a key."""
    if not api_key:
        return None
    if provider is None:
        if config.llm.provider == "mock":
            provider = MockProvider(
                response={"content": {}},
                text_response={"content": MOCK_NARRATIVE},
            )
        else:
            provider = OpenAIChatProvider(
                api_key=api_key,
                base_url=config.llm.base_url,
                timeout_s=config.llm.timeout_s,
            )
    return LLMClient(
        provider=provider,
        model=config.llm.model,
        max_output_tokens=config.llm.max_output_tokens,
        cache_dir=config.cache.dir,
        cache_enabled=config.cache.enabled,
    )


__all__ = [
    "LLMClient",
    "LLMError",
    "LLMProvider",
    "MOCK_NARRATIVE",
    "MockProvider",
    "OpenAIChatProvider",
    "build_llm_client",
]
