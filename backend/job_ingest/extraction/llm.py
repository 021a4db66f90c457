"""Structured-generation capability with provider abstraction.

Every provider answers one question: given a prompt and a JSON schema, return
a parsed JSON object or raise :class:`GenerationError`.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import structlog
from openai import OpenAI

from job_ingest.config import AppConfig, ConfigurationError

logger = structlog.get_logger(__name__)

# Tool name asking the provider to read the referenced URLs while answering
URL_CONTEXT_TOOL = "url_context"

_SYSTEM_PROMPT = (
    "You are a precise information-extraction engine for a job-search assistant. "
    "Answer with a single JSON object that satisfies the provided JSON schema. "
    "Never wrap the JSON in markdown and never add commentary."
)


class GenerationError(RuntimeError):
    """The provider failed, timed out, or returned something that is not JSON."""


@dataclass(frozen=True)
class GenerationResult:
    """Parsed output of one structured-generation call."""

    parsed: dict[str, Any]
    text: str
    metadata: Optional[Any] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0


class GenerationProvider(Protocol):
    """Protocol that any structured-generation provider must implement."""

    name: str
    model: str

    def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        tools: Optional[Sequence[str]] = None,
    ) -> GenerationResult: ...


# ── OpenAI-compatible provider ────────────────────────────


class OpenAICompatibleProvider:
    """Chat-completions provider for OpenAI, OpenRouter and Gemini's OpenAI endpoint."""

    def __init__(
        self,
        *,
        name: str,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_sec: int = 45,
    ) -> None:
        self.name = name
        self.model = model
        self._timeout_sec = timeout_sec
        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_sec,
            max_retries=0,  # the pipeline never retries; callers degrade instead
        )

    def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        tools: Optional[Sequence[str]] = None,
    ) -> GenerationResult:
        request: dict[str, Any] = {
            "model": self.model,
            "timeout": self._timeout_sec,
            "temperature": 0,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "structured_output", "schema": schema},
            },
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        if tools and URL_CONTEXT_TOOL in tools and self.name == "openrouter":
            # OpenRouter's web plugin fetches the URLs named in the prompt
            request["extra_body"] = {"plugins": [{"id": "web"}]}

        try:
            resp = self._client.chat.completions.create(**request)
        except Exception as exc:
            raise GenerationError(f"{self.name} request failed: {exc}") from exc

        if not resp.choices:
            raise GenerationError(f"{self.name} returned no choices")
        message = resp.choices[0].message
        content = (message.content or "").strip()
        if not content:
            raise GenerationError(f"{self.name} returned an empty response")

        parsed = parse_json_object(content, source=self.name)

        annotations = getattr(message, "annotations", None)
        metadata = (
            [a.model_dump() if hasattr(a, "model_dump") else a for a in annotations]
            if annotations
            else None
        )
        usage = getattr(resp, "usage", None)
        return GenerationResult(
            parsed=parsed,
            text=content,
            metadata=metadata,
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )


def parse_json_object(content: str, source: str = "provider") -> dict[str, Any]:
    """Parse *content* as a JSON object, tolerating a markdown code fence."""
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"{source} returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise GenerationError(f"{source} returned {type(parsed).__name__}, expected an object")
    return parsed


# ── Factory ───────────────────────────────────────────────


def _provider_settings(config: AppConfig, name: str) -> tuple[str, Optional[str]]:
    if name == "openrouter":
        return config.openrouter_api_key.get_secret_value(), config.openrouter_base_url
    if name == "gemini":
        return config.gemini_api_key.get_secret_value(), config.gemini_base_url
    if name == "openai":
        return config.openai_api_key.get_secret_value(), None
    raise ConfigurationError(
        f"Unknown LLM provider: {name!r}. Available: openrouter, gemini, openai, disabled"
    )


def create_generation_provider(
    config: AppConfig, provider_name: str, model: str
) -> Optional[GenerationProvider]:
    """Instantiate the provider an identity selected, or None when disabled.

    Raises:
        ConfigurationError: the provider is unknown or its API key is missing.
    """
    name = (provider_name or "disabled").strip().lower()
    if not config.llm_enabled or name == "disabled":
        return None

    api_key, base_url = _provider_settings(config, name)
    if not api_key:
        raise ConfigurationError(f"{name.upper()}_API_KEY is not set (llm_provider={name})")

    logger.info("llm_provider_ready", provider=name, model=model)
    return OpenAICompatibleProvider(
        name=name,
        model=model,
        api_key=api_key,
        base_url=base_url,
        timeout_sec=config.llm_timeout_sec,
    )


# ── Hard-timeout wrapper ──────────────────────────────────


def generate_with_timeout(
    provider: GenerationProvider,
    prompt: str,
    schema: dict[str, Any],
    tools: Optional[Sequence[str]] = None,
    timeout_sec: int = 45,
) -> GenerationResult:
    """Call the provider with a hard thread-based timeout.

    This guards against the SDK's own timeout being unreliable.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(provider.generate, prompt, schema, tools)
    try:
        return future.result(timeout=timeout_sec)
    except FuturesTimeoutError:
        future.cancel()
        raise GenerationError(f"LLM hard-timeout after {timeout_sec}s")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
