# FILE: contentgen/services/model_profiles.py
#
# Central place for model routing by endpoint. Provider, model id and the
# cost-name slug registered in the runs service live together so a model
# change never touches the orchestration code.

from __future__ import annotations

import os
from dataclasses import dataclass

PROVIDERS = ("anthropic", "openai")


@dataclass(frozen=True)
class ModelProfile:
    provider: str
    model: str
    # e.g. "sonnet-4.6" -> "anthropic-sonnet-4.6-tokens-input"
    cost_slug: str
    max_tokens: int = 1024

    @property
    def input_cost_name(self) -> str:
        return f"{self.provider}-{self.cost_slug}-tokens-input"

    @property
    def output_cost_name(self) -> str:
        return f"{self.provider}-{self.cost_slug}-tokens-output"


def normalize_provider(value: str) -> str:
    v = (value or "").strip().lower()
    # Accept common shorthand used in config.
    if v == "claude":
        return "anthropic"
    if v not in PROVIDERS:
        raise ValueError(f"Unsupported LLM provider: {value!r}")
    return v


def profile_from_env(prefix: str, provider: str, model: str, cost_slug: str, max_tokens: int) -> ModelProfile:
    resolved_provider = normalize_provider(os.getenv(f"{prefix}_PROVIDER", "").strip() or provider)
    model_override = os.getenv(f"{prefix}", "").strip()
    slug_override = os.getenv(f"{prefix}_COST_SLUG", "").strip()

    # Default model ids and cost slugs belong to the default provider.
    if resolved_provider != normalize_provider(provider) and not (model_override and slug_override):
        raise ValueError(
            f"{prefix}_PROVIDER={resolved_provider} also requires {prefix} and {prefix}_COST_SLUG"
        )

    return ModelProfile(
        provider=resolved_provider,
        model=model_override or model,
        cost_slug=slug_override or cost_slug,
        max_tokens=int(os.getenv(f"{prefix}_MAX_TOKENS", "").strip() or max_tokens),
    )


# POST /generate (stored template -> 3-step sequence)
TEMPLATE_PROFILE = profile_from_env(
    "TEMPLATE_MODEL", "anthropic", "claude-sonnet-4-6", "sonnet-4.6", 2048,
)

# POST /generate/content and /generate/calendar
CONTENT_PROFILE = profile_from_env(
    "CONTENT_MODEL", "anthropic", "claude-opus-4-6", "opus-4.6", 4096,
)
CALENDAR_PROFILE = profile_from_env(
    "CALENDAR_MODEL",
    CONTENT_PROFILE.provider,
    CONTENT_PROFILE.model,
    CONTENT_PROFILE.cost_slug,
    1024,
)
