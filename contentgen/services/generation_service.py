# FILE: contentgen/services/generation_service.py
# =========================================================
# Generation pipeline
# =========================================================

"""
One orchestrator drives every generation endpoint:

    RECEIVED -> IDEMPOTENT_HIT (done)
             -> IDEMPOTENCY_MISS -> TEMPLATE_RESOLVED -> KEY_RESOLVED -> LLM_INVOKED
             -> PERSISTED -> RUN_CREATED -> RUN_LINKED -> COSTS_REPORTED -> RUN_COMPLETED (done)

Endpoints differ only in their FailurePolicy: what happens when a step after
PERSISTED fails. BEST_EFFORT logs the failure at error level and still answers
with the generated content; STRICT re-raises so the request fails.

The run id is linked onto the generation row before costs are reported, so
per-item cost lookups keep working when the later ledger calls fail.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.core import config
from contentgen.core.errors import GenerationError, NotFoundError, ValidationError
from contentgen.models.generation import Generation
from contentgen.models.prompt import PromptTemplate
from contentgen.services import key_client, llm_service, model_profiles
from contentgen.services.llm_service import GenerationResult
from contentgen.services.runs_client import RunsClient

logger = logging.getLogger("content-generation.pipeline")


class FailurePolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    STRICT = "strict"


class GenerationStage(str, Enum):
    RECEIVED = "received"
    IDEMPOTENT_HIT = "idempotent_hit"
    IDEMPOTENCY_MISS = "idempotency_miss"
    TEMPLATE_RESOLVED = "template_resolved"
    KEY_RESOLVED = "key_resolved"
    LLM_INVOKED = "llm_invoked"
    PERSISTED = "persisted"
    RUN_CREATED = "run_created"
    RUN_LINKED = "run_linked"
    COSTS_REPORTED = "costs_reported"
    RUN_COMPLETED = "run_completed"


@dataclass(frozen=True)
class OrgContext:
    org_id: str          # internal orgs.id
    clerk_org_id: str    # upstream organization id (header value)


@dataclass(frozen=True)
class GenerationJob:
    """Normalized request for one generation. kind: sequence | email | calendar."""
    kind: str
    app_id: str
    key_mode: str
    task_name: str

    prompt: Optional[str] = None
    prompt_type: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    placeholder_names: Optional[List[str]] = None
    include_footer: bool = False

    parent_run_id: Optional[str] = None
    brand_id: Optional[str] = None
    campaign_id: Optional[str] = None
    apollo_enrichment_id: Optional[str] = None
    workflow_name: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass
class GenerationOutcome:
    generation_id: str
    response: Dict[str, Any]
    stage: GenerationStage
    idempotent_hit: bool = False
    generation_run_id: Optional[str] = None
    ledger_error: Optional[Exception] = None


PROFILE_BY_KIND = {
    "sequence": model_profiles.TEMPLATE_PROFILE,
    "email": model_profiles.CONTENT_PROFILE,
    "calendar": model_profiles.CALENDAR_PROFILE,
}

# variable name -> generations column
LEAD_COLUMNS = {
    "leadFirstName": "lead_first_name",
    "leadLastName": "lead_last_name",
    "leadTitle": "lead_title",
    "leadCompanyName": "lead_company",
    "leadCompanyIndustry": "lead_industry",
    "clientCompanyName": "client_company_name",
}


# ─────────────────────────────────────────────
# Lookups
# ─────────────────────────────────────────────
async def find_idempotent_generation(db: AsyncSession, org_id: str, idempotency_key: str) -> Optional[Generation]:
    return (
        await db.execute(
            select(Generation).where(
                Generation.org_id == org_id,
                Generation.idempotency_key == idempotency_key,
            )
        )
    ).scalar_one_or_none()


async def get_prompt_template(db: AsyncSession, app_id: str, type_: str) -> Optional[PromptTemplate]:
    return (
        await db.execute(
            select(PromptTemplate).where(PromptTemplate.app_id == app_id, PromptTemplate.type == type_)
        )
    ).scalar_one_or_none()


# ─────────────────────────────────────────────
# Shaping
# ─────────────────────────────────────────────
def shape_response(record: Generation) -> Dict[str, Any]:
    """Response body for a stored generation, keyed by its kind."""
    base: Dict[str, Any] = {
        "id": record.id,
        "tokens_input": record.tokens_input or 0,
        "tokens_output": record.tokens_output or 0,
    }
    if record.kind == "sequence":
        base.update(subject=record.subject or "", sequence=list(record.sequence or []))
    elif record.kind == "email":
        base.update(
            subject=record.subject or "",
            body_html=record.body_html or "",
            body_text=record.body_text or "",
        )
    elif record.kind == "calendar":
        base.update(
            title=record.title or "",
            description=record.description or "",
            location=record.location,
        )
    return base


def build_cost_items(result: GenerationResult) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    if result.tokens_input:
        items.append({"costName": result.profile.input_cost_name, "quantity": result.tokens_input})
    if result.tokens_output:
        items.append({"costName": result.profile.output_cost_name, "quantity": result.tokens_output})
    return items


def _lead_columns(variables: Dict[str, Any]) -> Dict[str, Optional[str]]:
    out: Dict[str, Optional[str]] = {}
    for var_name, column in LEAD_COLUMNS.items():
        v = variables.get(var_name)
        out[column] = v if isinstance(v, str) and v else None
    return out


# ─────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────
class GenerationOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        runs: RunsClient,
        policy: FailurePolicy,
        service_name: Optional[str] = None,
    ):
        self.db = db
        self.runs = runs
        self.policy = policy
        self.service_name = service_name or config.SERVICE_NAME

    def _enter(self, stage: GenerationStage, job: GenerationJob) -> GenerationStage:
        logger.debug(f"[{job.task_name}] stage={stage.value} app={job.app_id}")
        return stage

    async def run(self, org: OrgContext, job: GenerationJob) -> GenerationOutcome:
        self._enter(GenerationStage.RECEIVED, job)

        if job.idempotency_key:
            existing = await find_idempotent_generation(self.db, org.org_id, job.idempotency_key)
            if existing:
                return self._replay(existing, job)
        self._enter(GenerationStage.IDEMPOTENCY_MISS, job)

        prompt_template = await self._resolve_template(job)
        self._enter(GenerationStage.TEMPLATE_RESOLVED, job)

        profile = PROFILE_BY_KIND[job.kind]
        api_key = await key_client.resolve_api_key(job.key_mode, org.clerk_org_id, job.app_id, profile.provider)
        self._enter(GenerationStage.KEY_RESOLVED, job)

        result = await self._invoke(job, api_key, prompt_template, profile)
        self._enter(GenerationStage.LLM_INVOKED, job)

        record = self._build_record(org, job, result, prompt_template)
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if not job.idempotency_key:
                raise
            winner = await find_idempotent_generation(self.db, org.org_id, job.idempotency_key)
            if winner is None:
                raise
            logger.info(
                f"[{job.task_name}] lost idempotency race for key={job.idempotency_key}; "
                f"returning generation {winner.id}"
            )
            return self._replay(winner, job)
        self._enter(GenerationStage.PERSISTED, job)

        outcome = GenerationOutcome(
            generation_id=record.id,
            response=shape_response(record),
            stage=GenerationStage.PERSISTED,
        )
        await self._track_usage(org, job, record, result, outcome)
        return outcome

    def _replay(self, record: Generation, job: GenerationJob) -> GenerationOutcome:
        if record.kind != job.kind:
            raise ValidationError(
                f"idempotencyKey {job.idempotency_key} already used for a {record.kind} generation"
            )
        logger.info(f"[{job.task_name}] idempotent replay of generation {record.id}")
        return GenerationOutcome(
            generation_id=record.id,
            response=shape_response(record),
            stage=GenerationStage.IDEMPOTENT_HIT,
            idempotent_hit=True,
            generation_run_id=record.generation_run_id,
        )

    async def _resolve_template(self, job: GenerationJob) -> Optional[str]:
        if job.kind != "sequence":
            return None
        stored = await get_prompt_template(self.db, job.app_id, job.prompt_type or "")
        if stored is None:
            raise NotFoundError(
                f"No prompt found for appId={job.app_id}, type={job.prompt_type}. "
                f"Register one via PUT /prompts first."
            )
        return stored.prompt

    async def _invoke(self, job: GenerationJob, api_key: str, prompt_template: Optional[str], profile) -> GenerationResult:
        if job.kind == "sequence":
            return await llm_service.generate_sequence(api_key, prompt_template or "", job.variables, profile)
        if job.kind == "email":
            return await llm_service.generate_email_content(
                api_key, job.prompt or "", job.placeholder_names, job.include_footer, profile,
            )
        if job.kind == "calendar":
            return await llm_service.generate_calendar(api_key, job.prompt or "", profile)
        raise ValueError(f"Unknown generation kind: {job.kind}")

    def _build_record(
        self,
        org: OrgContext,
        job: GenerationJob,
        result: GenerationResult,
        prompt_template: Optional[str],
    ) -> Generation:
        output = result.output
        record = Generation(
            id=str(uuid.uuid4()),
            org_id=org.org_id,
            app_id=job.app_id,
            brand_id=job.brand_id,
            campaign_id=job.campaign_id,
            kind=output.kind,
            prompt_type=job.prompt_type,
            key_mode=job.key_mode,
            run_id=job.parent_run_id,
            apollo_enrichment_id=job.apollo_enrichment_id,
            workflow_name=job.workflow_name,
            idempotency_key=job.idempotency_key,
            prompt=job.prompt if prompt_template is None else prompt_template,
            include_footer=job.include_footer if job.kind == "email" else None,
            model=result.profile.model,
            tokens_input=result.tokens_input,
            tokens_output=result.tokens_output,
            prompt_raw=result.prompt_raw,
            response_raw=result.response_raw,
        )

        if job.kind == "sequence":
            record.variables_raw = dict(job.variables)
            for column, value in _lead_columns(job.variables).items():
                setattr(record, column, value)
        elif job.placeholder_names:
            record.variables_raw = {"placeholders": list(job.placeholder_names)}

        if output.kind == "sequence":
            record.subject = output.subject
            record.sequence = [step.to_dict() for step in output.steps]
        elif output.kind == "email":
            record.subject = output.subject
            record.body_html = output.body_html
            record.body_text = output.body_text
        elif output.kind == "calendar":
            record.title = output.title
            record.description = output.description
            record.location = output.location
        return record

    async def _track_usage(
        self,
        org: OrgContext,
        job: GenerationJob,
        record: Generation,
        result: GenerationResult,
        outcome: GenerationOutcome,
    ) -> None:
        cost_items = build_cost_items(result)
        # A rollback expires `record`; read nothing from it in the except block.
        generation_id = outcome.generation_id
        stage = GenerationStage.PERSISTED
        run_id: Optional[str] = None

        try:
            stage = GenerationStage.RUN_CREATED
            run = await self.runs.create_run(
                clerk_org_id=org.clerk_org_id,
                app_id=job.app_id,
                service_name=self.service_name,
                task_name=job.task_name,
                parent_run_id=job.parent_run_id,
                brand_id=job.brand_id,
                campaign_id=job.campaign_id,
                workflow_name=job.workflow_name,
            )
            run_id = (run or {}).get("id")
            if not run_id:
                raise GenerationError("runs-service POST /v1/runs returned no run id")
            self._enter(stage, job)

            stage = GenerationStage.RUN_LINKED
            record.generation_run_id = run_id
            await self.db.commit()
            outcome.generation_run_id = run_id
            self._enter(stage, job)

            stage = GenerationStage.COSTS_REPORTED
            if cost_items:
                await self.runs.add_costs(run_id, cost_items)
            self._enter(stage, job)

            stage = GenerationStage.RUN_COMPLETED
            await self.runs.update_run(run_id, "completed")
            self._enter(stage, job)
            outcome.stage = stage

        except Exception as e:
            if stage == GenerationStage.RUN_LINKED:
                await self.db.rollback()
            context = {
                "policy": self.policy.value,
                "failedStage": stage.value,
                "generationId": generation_id,
                "generationRunId": run_id,
                "parentRunId": job.parent_run_id,
                "apolloEnrichmentId": job.apollo_enrichment_id,
                "tokensInput": result.tokens_input,
                "tokensOutput": result.tokens_output,
                "costNames": [result.profile.input_cost_name, result.profile.output_cost_name],
                "error": str(e),
            }
            if self.policy is FailurePolicy.STRICT:
                logger.error(f"[{job.task_name}] COST TRACKING FAILED, failing request. {context}")
                raise
            logger.error(
                f"[{job.task_name}] COST TRACKING FAILED, costs will be missing from campaign totals. {context}",
                exc_info=True,
            )
            outcome.ledger_error = e
