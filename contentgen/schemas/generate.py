# =========================================================
# FILE: /contentgen/schemas/generate.py
# =========================================================

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


KeyMode = Literal["byok", "app"]

# Widths of the matching generations/prompts columns.
ID_MAX = 120
TYPE_MAX = 80
IDEMPOTENCY_KEY_MAX = 190


# ─────────────────────────────────────────────
# REQUESTS
# ─────────────────────────────────────────────

class GenerateRequest(CamelModel):
    app_id: str = Field(min_length=1, max_length=ID_MAX)
    type: str = Field(min_length=1, max_length=TYPE_MAX, description="Which stored prompt to use, e.g. 'email'")
    variables: Dict[str, Any]
    key_mode: KeyMode
    run_id: str = Field(min_length=1, max_length=ID_MAX)

    brand_id: Optional[str] = Field(default=None, max_length=ID_MAX)
    campaign_id: Optional[str] = Field(default=None, max_length=ID_MAX)
    apollo_enrichment_id: Optional[str] = Field(default=None, max_length=ID_MAX)
    workflow_name: Optional[str] = Field(default=None, max_length=ID_MAX)
    idempotency_key: Optional[str] = Field(default=None, max_length=IDEMPOTENCY_KEY_MAX)


class GenerateContentRequest(CamelModel):
    app_id: str = Field(min_length=1, max_length=ID_MAX)
    prompt: str = Field(min_length=1)
    variables: Optional[List[str]] = None
    include_footer: bool = False
    key_mode: KeyMode
    parent_run_id: Optional[str] = Field(default=None, max_length=ID_MAX)
    workflow_name: Optional[str] = Field(default=None, max_length=ID_MAX)
    idempotency_key: Optional[str] = Field(default=None, max_length=IDEMPOTENCY_KEY_MAX)


class GenerateCalendarRequest(CamelModel):
    app_id: str = Field(min_length=1, max_length=ID_MAX)
    prompt: str = Field(min_length=1)
    key_mode: KeyMode
    parent_run_id: Optional[str] = Field(default=None, max_length=ID_MAX)
    workflow_name: Optional[str] = Field(default=None, max_length=ID_MAX)
    idempotency_key: Optional[str] = Field(default=None, max_length=IDEMPOTENCY_KEY_MAX)


class UpsertPromptRequest(CamelModel):
    app_id: str = Field(min_length=1, max_length=ID_MAX)
    type: str = Field(min_length=1, max_length=TYPE_MAX)
    prompt: str
    variables: List[str] = Field(default_factory=list)

    @validator("prompt")
    def validate_prompt(cls, v: str):
        if not v or not v.strip():
            raise ValueError("prompt cannot be empty")
        return v


class StatsRequest(CamelModel):
    run_ids: Optional[List[str]] = None
    app_id: Optional[str] = None
    brand_id: Optional[str] = None
    campaign_id: Optional[str] = None


class StatsByModelRequest(CamelModel):
    run_ids: List[str]
    clerk_org_id: Optional[str] = None
    app_id: Optional[str] = None
    brand_id: Optional[str] = None
    campaign_id: Optional[str] = None


# ─────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────

class SequenceStepResponse(CamelModel):
    step: int
    body_html: str
    body_text: str
    days_since_last_step: int


class GenerateResponse(CamelModel):
    id: str
    subject: str
    sequence: List[SequenceStepResponse]
    tokens_input: int
    tokens_output: int


class GenerateContentResponse(CamelModel):
    id: str
    subject: str
    body_html: str
    body_text: str
    tokens_input: int
    tokens_output: int


class GenerateCalendarResponse(CamelModel):
    id: str
    title: str
    description: str
    location: Optional[str] = None
    tokens_input: int
    tokens_output: int


class PromptResponse(CamelModel):
    id: str
    app_id: str
    type: str
    prompt: Optional[str] = None
    variables: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class GenerationItem(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    org_id: str
    app_id: str
    brand_id: Optional[str] = None
    campaign_id: Optional[str] = None
    kind: str
    prompt_type: Optional[str] = None
    key_mode: str
    run_id: Optional[str] = None
    generation_run_id: Optional[str] = None
    apollo_enrichment_id: Optional[str] = None
    workflow_name: Optional[str] = None
    idempotency_key: Optional[str] = None

    lead_first_name: Optional[str] = None
    lead_last_name: Optional[str] = None
    lead_title: Optional[str] = None
    lead_company: Optional[str] = None
    lead_industry: Optional[str] = None
    client_company_name: Optional[str] = None

    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    sequence: Optional[List[Dict[str, Any]]] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None

    model: str
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None
    variables_raw: Optional[Any] = None
    created_at: datetime


class GenerationsListResponse(BaseModel):
    generations: List[GenerationItem]


class GenerationSingleResponse(BaseModel):
    generation: GenerationItem


class EmailStats(CamelModel):
    emails_generated: int


class StatsResponse(BaseModel):
    stats: EmailStats


class ModelStats(CamelModel):
    model: str
    count: int
    run_ids: List[str]


class StatsByModelResponse(BaseModel):
    stats: List[ModelStats]
