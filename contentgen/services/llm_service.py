# FILE: contentgen/services/llm_service.py

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import anthropic
from openai import OpenAI

from contentgen.core.errors import LLMInvocationError
from contentgen.services.model_profiles import (
    CALENDAR_PROFILE,
    CONTENT_PROFILE,
    TEMPLATE_PROFILE,
    ModelProfile,
)
from contentgen.services.prompt_service import (
    SEQUENCE_JSON_SCHEMA,
    build_calendar_system_prompt,
    build_content_system_prompt,
    build_sequence_system_prompt,
)
from contentgen.services.template_service import substitute_variables

# Relative delay of each sequence step (days since the previous step).
SEQUENCE_DAY_OFFSETS = (0, 3, 10)
SEQUENCE_FIELDS = ("body", "followup1", "followup2")


# =========================
# OUTPUT VARIANTS
# =========================
@dataclass(frozen=True)
class SequenceStep:
    step: int
    body_html: str
    body_text: str
    days_since_last_step: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "bodyHtml": self.body_html,
            "bodyText": self.body_text,
            "daysSinceLastStep": self.days_since_last_step,
        }


@dataclass(frozen=True)
class SequenceOutput:
    subject: str
    steps: List[SequenceStep]
    kind: str = field(default="sequence", init=False)


@dataclass(frozen=True)
class EmailOutput:
    subject: str
    body_html: str
    body_text: str
    kind: str = field(default="email", init=False)


@dataclass(frozen=True)
class CalendarOutput:
    title: str
    description: str
    location: Optional[str]
    kind: str = field(default="calendar", init=False)


GenerationOutput = Union[SequenceOutput, EmailOutput, CalendarOutput]


@dataclass(frozen=True)
class GenerationResult:
    output: GenerationOutput
    tokens_input: int
    tokens_output: int
    prompt_raw: str
    response_raw: Dict[str, Any]
    profile: ModelProfile


@dataclass(frozen=True)
class LLMCompletion:
    text: str
    tokens_input: int
    tokens_output: int
    raw: Dict[str, Any]


# =========================
# PROVIDER CLIENTS
# =========================
def _anthropic_client(api_key: str) -> anthropic.Anthropic:
    return anthropic.Anthropic(api_key=api_key)


def _openai_client(api_key: str) -> OpenAI:
    return OpenAI(api_key=api_key)


def _dump(response: Any) -> Dict[str, Any]:
    if hasattr(response, "model_dump"):
        return response.model_dump(mode="json")
    if isinstance(response, dict):
        return response
    return {"repr": repr(response)}


def _token_count(value: Any) -> int:
    try:
        n = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(n, 0)


def _call_anthropic(profile: ModelProfile, api_key: str, system_prompt: str, user_prompt: str,
                    json_schema: Optional[Dict[str, Any]]) -> LLMCompletion:
    kwargs: Dict[str, Any] = {}
    if json_schema:
        kwargs["extra_body"] = {"output_config": {"format": {"type": "json_schema", "schema": json_schema}}}

    response = _anthropic_client(api_key).messages.create(
        model=profile.model,
        max_tokens=profile.max_tokens,
        system=system_prompt,
        messages=[{"role": "user", "content": user_prompt}],
        **kwargs,
    )

    text = "".join(
        block.text for block in (response.content or []) if getattr(block, "type", None) == "text"
    )
    return LLMCompletion(
        text=text,
        tokens_input=_token_count(response.usage.input_tokens),
        tokens_output=_token_count(response.usage.output_tokens),
        raw=_dump(response),
    )


def _call_openai(profile: ModelProfile, api_key: str, system_prompt: str, user_prompt: str,
                 json_schema: Optional[Dict[str, Any]]) -> LLMCompletion:
    kwargs: Dict[str, Any] = {}
    if json_schema:
        kwargs["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": "generation", "schema": json_schema, "strict": True},
        }

    response = _openai_client(api_key).chat.completions.create(
        model=profile.model,
        max_completion_tokens=profile.max_tokens,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        **kwargs,
    )

    text = (response.choices[0].message.content or "") if response.choices else ""
    usage = response.usage
    return LLMCompletion(
        text=text,
        tokens_input=_token_count(getattr(usage, "prompt_tokens", 0)),
        tokens_output=_token_count(getattr(usage, "completion_tokens", 0)),
        raw=_dump(response),
    )


async def complete(
    profile: ModelProfile,
    api_key: str,
    system_prompt: str,
    user_prompt: str,
    json_schema: Optional[Dict[str, Any]] = None,
) -> LLMCompletion:
    call = _call_anthropic if profile.provider == "anthropic" else _call_openai

    def _call():
        return call(profile, api_key, system_prompt, user_prompt, json_schema)

    try:
        return await asyncio.to_thread(_call)
    except LLMInvocationError:
        raise
    except Exception as e:
        raise LLMInvocationError(f"{profile.provider} request failed: {e}") from e


# =========================
# PARSING
# =========================
def text_to_html(text: str) -> str:
    paragraphs = [p for p in text.split("\n\n") if p.strip()]
    return "".join(f"<p>{p.strip().replace(chr(10), '<br>')}</p>" for p in paragraphs)


def _extract_json(text: str) -> Dict[str, Any]:
    if not text or not text.strip():
        raise LLMInvocationError("Empty LLM response")

    t = text.strip()

    # 1) direct JSON
    try:
        data = json.loads(t)
    except ValueError:
        data = None

    # 2) ```json fenced
    if data is None:
        fence = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", t, re.S | re.I)
        if fence:
            try:
                data = json.loads(fence.group(1))
            except ValueError:
                data = None

    if not isinstance(data, dict):
        raise LLMInvocationError(f"Failed to parse LLM response as JSON: {t[:200]}")
    return data


def parse_sequence_response(text: str) -> SequenceOutput:
    data = _extract_json(text)

    subject = data.get("subject")
    if not isinstance(subject, str) or not subject.strip():
        raise LLMInvocationError("LLM response is missing 'subject'")

    steps: List[SequenceStep] = []
    for i, (name, days) in enumerate(zip(SEQUENCE_FIELDS, SEQUENCE_DAY_OFFSETS), start=1):
        body = data.get(name)
        if not isinstance(body, str) or not body.strip():
            raise LLMInvocationError(f"LLM response is missing '{name}'")
        body_text = body.strip()
        steps.append(SequenceStep(
            step=i,
            body_html=text_to_html(body_text),
            body_text=body_text,
            days_since_last_step=days,
        ))

    return SequenceOutput(subject=subject.strip(), steps=steps)


def parse_email_response(text: str) -> EmailOutput:
    subject: Optional[str] = None
    body_lines: List[str] = []
    in_body = False

    for line in (text or "").strip().split("\n"):
        if in_body:
            body_lines.append(line)
        elif line.startswith("SUBJECT:"):
            subject = line[len("SUBJECT:"):].strip()
        elif line.strip() == "---":
            in_body = True

    if not subject or not in_body:
        raise LLMInvocationError(f"LLM response is not in SUBJECT/--- format: {(text or '')[:200]}")

    body_text = "\n".join(body_lines).strip()
    return EmailOutput(subject=subject, body_html=text_to_html(body_text), body_text=body_text)


def parse_calendar_response(text: str) -> CalendarOutput:
    data = _extract_json(text)
    location = data.get("location")
    return CalendarOutput(
        title=str(data.get("title") or ""),
        description=str(data.get("description") or ""),
        location=str(location) if location else None,
    )


# =========================
# GENERATION
# =========================
async def generate_sequence(
    api_key: str,
    prompt_template: str,
    variables: Mapping[str, Any],
    profile: ModelProfile = TEMPLATE_PROFILE,
) -> GenerationResult:
    prompt = substitute_variables(prompt_template, variables)
    completion = await complete(
        profile, api_key, build_sequence_system_prompt(), prompt, json_schema=SEQUENCE_JSON_SCHEMA,
    )
    return GenerationResult(
        output=parse_sequence_response(completion.text),
        tokens_input=completion.tokens_input,
        tokens_output=completion.tokens_output,
        prompt_raw=prompt,
        response_raw=completion.raw,
        profile=profile,
    )


async def generate_email_content(
    api_key: str,
    prompt: str,
    variables: Optional[List[str]] = None,
    include_footer: bool = False,
    profile: ModelProfile = CONTENT_PROFILE,
) -> GenerationResult:
    system_prompt = build_content_system_prompt(variables, include_footer)
    completion = await complete(profile, api_key, system_prompt, prompt)
    return GenerationResult(
        output=parse_email_response(completion.text),
        tokens_input=completion.tokens_input,
        tokens_output=completion.tokens_output,
        prompt_raw=f"[SYSTEM]\n{system_prompt}\n\n[USER]\n{prompt}",
        response_raw=completion.raw,
        profile=profile,
    )


async def generate_calendar(
    api_key: str,
    prompt: str,
    profile: ModelProfile = CALENDAR_PROFILE,
) -> GenerationResult:
    system_prompt = build_calendar_system_prompt()
    completion = await complete(profile, api_key, system_prompt, prompt)
    return GenerationResult(
        output=parse_calendar_response(completion.text),
        tokens_input=completion.tokens_input,
        tokens_output=completion.tokens_output,
        prompt_raw=f"[SYSTEM]\n{system_prompt}\n\n[USER]\n{prompt}",
        response_raw=completion.raw,
        profile=profile,
    )
