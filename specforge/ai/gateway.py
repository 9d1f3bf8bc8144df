"""
SpecForge
LLM Gateway.

Provider-agnostic chat router with:
    - Multi-provider support (Anthropic Claude, OpenAI, Gemini, local stub)
    - Per-model provider routing
    - Bounded retry with backoff (AI_MAX_RETRIES, default 1 = single attempt)
    - Token + cost accounting on every result

Persistence of each call (AIRun rows) is the job of
``specforge.ai.capabilities``; this module never touches the database.

Usage:
    from specforge.ai.gateway import LLMGateway
    gw = LLMGateway()
    result = gw.chat([{"role": "user", "content": "..."}], model="claude-sonnet-4-20250514")
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod

import anthropic
import openai
from google import genai
from google.genai import types as genai_types

from specforge.models.ai import calculate_cost

logger = logging.getLogger(__name__)


class LLMCallError(RuntimeError):
    """Raised when every attempt against the provider failed."""


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model, truncated
        """
        ...


def _split_system(messages: list) -> tuple[str, list]:
    system_parts = []
    chat_messages = []
    for m in messages:
        if m["role"] == "system":
            system_parts.append(m["content"])
        else:
            chat_messages.append(m)
    return "\n\n".join(system_parts), chat_messages


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "claude-sonnet-4-20250514", **kwargs) -> dict:
        client = self._get_client()
        system_msg, chat_messages = _split_system(messages)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)
        text = next((block.text for block in response.content if block.type == "text"), "")

        return {
            "content": text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
            "truncated": response.stop_reason == "max_tokens",
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.3),
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
            "truncated": choice.finish_reason == "length",
        }


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Environment:
        GEMINI_API_KEY — obtain at https://aistudio.google.com/apikey
    """

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        system_msg, chat_messages = _split_system(messages)

        # Gemini uses "user" and "model" roles
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in chat_messages
        ]

        config = genai_types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.3),
            max_output_tokens=kwargs.get("max_tokens", 4096),
        )
        if system_msg:
            config.system_instruction = system_msg

        response = client.models.generate_content(model=model, contents=contents, config=config)

        prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
        completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0
        finish = ""
        if response.candidates:
            finish = str(getattr(response.candidates[0], "finish_reason", "") or "")

        return {
            "content": response.text or "",
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "model": model,
            "truncated": "MAX_TOKENS" in finish,
        }


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic, schema-valid JSON for every
    SpecForge AI task. No API key required.
    """

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        system_msg, chat_messages = _split_system(messages)
        user_msg = chat_messages[-1]["content"] if chat_messages else ""

        content = json.dumps(self._generate_stub_response(system_msg.lower(), user_msg))

        return {
            "content": content,
            "prompt_tokens": len((system_msg + user_msg).split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
            "truncated": False,
        }

    @staticmethod
    def _generate_stub_response(system: str, user_msg: str):
        features = [
            {"title": "User Authentication", "description": "Sign up, sign in and password reset.",
             "priority": "MUST", "complexity": "M"},
            {"title": "Core Workflow", "description": "Create, edit and track the primary records.",
             "priority": "MUST", "complexity": "L"},
            {"title": "Admin Dashboard", "description": "Overview metrics and user management.",
             "priority": "SHOULD", "complexity": "M"},
        ]

        if "requirements analyst" in system:
            overview = " ".join(user_msg.replace("Project inputs:", "").split())[:280]
            return {
                "projectOverview": overview or "Project overview",
                "objectives": ["Deliver a usable first release"],
                "functionalRequirements": [
                    {"category": "Core", "requirements": [f["title"] for f in features]},
                ],
                "nonFunctionalRequirements": ["Responsive UI", "Encrypted data at rest"],
                "assumptions": ["Single-region deployment"],
                "constraints": [],
            }

        if "breaks requirements into discrete features" in system:
            return features

        if "revising one section" in system:
            return {"content": "Revised section content."}

        if "project estimator" in system:
            items = [
                {"name": f["title"], "description": f["description"],
                 "hoursMin": 24 * (i + 1), "hoursMax": 40 * (i + 1),
                 "costMin": 2400.0 * (i + 1), "costMax": 4000.0 * (i + 1)}
                for i, f in enumerate(features)
            ]
            return {
                "timelineMinDays": 30,
                "timelineMaxDays": 45,
                "costMin": sum(i["costMin"] for i in items),
                "costMax": sum(i["costMax"] for i in items),
                "confidenceScore": 70,
                "assumptions": ["One full-stack developer", "Client provides content"],
                "lineItems": items,
                "breakdown": {
                    "projectOverview": "Stub estimate.",
                    "scope": [f["title"] for f in features],
                    "timeline": {"phases": ["Discovery", "Build", "Launch"]},
                },
            }

        if "software architect" in system:
            return {
                "frontend": ["React", "TypeScript"],
                "backend": ["Python", "Flask"],
                "database": ["PostgreSQL"],
                "infrastructure": ["Docker", "GitHub Actions"],
                "integrations": ["Stripe"],
                "rationale": {"backend": "Mature ecosystem and fast iteration."},
            }

        if "ux architect" in system:
            return {
                "screens": [
                    {"name": "Login", "description": "Sign-in form", "screenType": "AUTH",
                     "purpose": "Authenticate users", "userActions": ["Sign in"],
                     "entryPoint": True, "featureTitle": "User Authentication"},
                    {"name": "Dashboard", "description": "Landing page", "screenType": "DASHBOARD",
                     "purpose": "Overview", "userActions": ["Open record"],
                     "entryPoint": False, "featureTitle": "Admin Dashboard"},
                ],
                "transitions": [
                    {"fromScreen": "Login", "toScreen": "Dashboard",
                     "triggerAction": "submit", "triggerLabel": "Sign in", "condition": None},
                ],
                "assumptions": ["Web-first layout"],
            }

        if "wireframe" in system:
            return {
                "screens": [
                    {"screenName": "Login", "title": "Sign in", "description": "Centered form",
                     "screenType": "AUTH",
                     "sections": [{"name": "form", "layout": "stack",
                                   "components": [{"type": "input", "label": "Email"},
                                                  {"type": "button", "label": "Sign in"}]}]},
                ],
                "designSystem": {"colorPalette": {"primary": "#2563eb"}, "typography": {}, "spacing": {}},
                "assumptions": ["Desktop viewport"],
            }

        return {"response": "Stub response."}


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name
        - Bounded retry with exponential backoff
        - Token/cost accounting

    Usage:
        gw = LLMGateway(max_retries=2)
        result = gw.chat(messages, purpose="extract_features")
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # Anthropic
        "claude-sonnet-4-20250514": "anthropic",
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        # Google Gemini
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        # Local stub (dev/test)
        "local-stub": "local",
    }

    DEFAULT_CHAT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, *, default_model: str | None = None, max_retries: int = 1,
                 max_tokens: int = 4096, api_keys: dict | None = None,
                 allow_stub_fallback: bool = True):
        self.default_model = default_model or self.DEFAULT_CHAT_MODEL
        self.allow_stub_fallback = allow_stub_fallback
        self.max_retries = max(1, int(max_retries))
        self.max_tokens = max_tokens
        self._providers: dict[str, LLMProvider] = {}
        self._init_providers(api_keys or {})

    @classmethod
    def from_config(cls, config) -> "LLMGateway":
        return cls(
            default_model=config.get("LLM_DEFAULT_CHAT_MODEL"),
            max_retries=config.get("AI_MAX_RETRIES", 1),
            max_tokens=config.get("AI_MAX_TOKENS", 4096),
            allow_stub_fallback=bool(config.get("TESTING") or config.get("DEBUG")),
            api_keys={
                "anthropic": config.get("ANTHROPIC_API_KEY"),
                "openai": config.get("OPENAI_API_KEY"),
                "gemini": config.get("GEMINI_API_KEY"),
            },
        )

    def _init_providers(self, api_keys: dict):
        """Register the local stub plus every provider that has an API key."""
        self._providers["local"] = LocalStubProvider()

        anthropic_key = api_keys.get("anthropic") or os.getenv("ANTHROPIC_API_KEY")
        openai_key = api_keys.get("openai") or os.getenv("OPENAI_API_KEY")
        gemini_key = api_keys.get("gemini") or os.getenv("GEMINI_API_KEY")
        if anthropic_key:
            self._providers["anthropic"] = AnthropicProvider(anthropic_key)
        if openai_key:
            self._providers["openai"] = OpenAIProvider(openai_key)
        if gemini_key:
            self._providers["gemini"] = GeminiProvider(gemini_key)

    def provider_name(self, model: str) -> str:
        """Provider that will serve ``model``; does not raise."""
        provider_name = self.PROVIDER_MAP.get(model)
        if provider_name in self._providers:
            return provider_name
        return "local" if self.allow_stub_fallback else (provider_name or "unknown")

    def provider_for(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Returns (provider, provider_name).

        A provider without an API key falls back to the local stub only when
        ``allow_stub_fallback`` is set (testing/debug configs).

        Raises:
            LLMCallError: no configured provider and fallback disabled.
        """
        provider_name = self.PROVIDER_MAP.get(model)
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        if not self.allow_stub_fallback:
            raise LLMCallError(
                f"No provider configured for model '{model}' (missing API key?)"
            )
        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def chat(self, messages: list, model: str | None = None, *, purpose: str = "", **kwargs) -> dict:
        """
        Send a chat completion request.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, truncated,
                   cost_usd, latency_ms, provider}

        Raises:
            LLMCallError: every attempt failed.
        """
        model = model or self.default_model
        provider, provider_name = self.provider_for(model)
        kwargs.setdefault("max_tokens", self.max_tokens)

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
            except Exception as e:  # provider SDKs raise many unrelated types
                last_error = e
                logger.warning("LLM call attempt %d/%d failed (%s): %s",
                               attempt, self.max_retries, purpose or "chat", e)
                if attempt < self.max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), 4))
                continue

            result["latency_ms"] = int((time.time() - start_time) * 1000)
            result["cost_usd"] = calculate_cost(
                result["model"], result["prompt_tokens"], result["completion_tokens"],
            )
            result["provider"] = provider_name
            return result

        logger.error("LLM call failed after %d attempt(s) (%s): %s",
                     self.max_retries, purpose or "chat", last_error)
        raise LLMCallError(f"{provider_name} call failed: {last_error}") from last_error
