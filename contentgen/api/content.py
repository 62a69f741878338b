# FILE: contentgen/api/content.py
# =========================================================
# Free-text prompt generation (email content + calendar)
# =========================================================

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.api.deps import get_org, get_runs_client
from contentgen.core.database import get_db
from contentgen.schemas.generate import (
    GenerateCalendarRequest,
    GenerateCalendarResponse,
    GenerateContentRequest,
    GenerateContentResponse,
)
from contentgen.services.generation_service import (
    FailurePolicy,
    GenerationJob,
    GenerationOrchestrator,
    OrgContext,
)
from contentgen.services.runs_client import RunsClient

router = APIRouter(prefix="/generate", tags=["content"])


@router.post("/content", response_model=GenerateContentResponse)
async def generate_content(
        req: GenerateContentRequest,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
        runs: RunsClient = Depends(get_runs_client),
):
    """Generate email content from a free-text prompt. Cost tracking is mandatory."""
    job = GenerationJob(
        kind="email",
        app_id=req.app_id,
        key_mode=req.key_mode,
        task_name="content-generation",
        prompt=req.prompt,
        placeholder_names=req.variables,
        include_footer=req.include_footer,
        parent_run_id=req.parent_run_id,
        workflow_name=req.workflow_name,
        idempotency_key=req.idempotency_key,
    )
    outcome = await GenerationOrchestrator(db, runs, FailurePolicy.STRICT).run(org, job)
    return GenerateContentResponse(**outcome.response)


@router.post("/calendar", response_model=GenerateCalendarResponse)
async def generate_calendar(
        req: GenerateCalendarRequest,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
        runs: RunsClient = Depends(get_runs_client),
):
    """Generate calendar event fields from a free-text prompt. Cost tracking is mandatory."""
    job = GenerationJob(
        kind="calendar",
        app_id=req.app_id,
        key_mode=req.key_mode,
        task_name="calendar-generation",
        prompt=req.prompt,
        parent_run_id=req.parent_run_id,
        workflow_name=req.workflow_name,
        idempotency_key=req.idempotency_key,
    )
    outcome = await GenerationOrchestrator(db, runs, FailurePolicy.STRICT).run(org, job)
    return GenerateCalendarResponse(**outcome.response)
