# FILE: contentgen/api/generate.py
# =========================================================
# Stored-template generation + generation lookups
# =========================================================

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.api.deps import get_org, get_runs_client
from contentgen.core.database import get_db
from contentgen.models.generation import Generation
from contentgen.schemas.generate import (
    GenerateRequest,
    GenerateResponse,
    GenerationItem,
    GenerationSingleResponse,
    GenerationsListResponse,
    StatsRequest,
    StatsResponse,
)
from contentgen.services.generation_service import (
    FailurePolicy,
    GenerationJob,
    GenerationOrchestrator,
    OrgContext,
)
from contentgen.services.runs_client import RunsClient

router = APIRouter(tags=["generate"])


@router.post("/generate", response_model=GenerateResponse)
async def generate(
        req: GenerateRequest,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
        runs: RunsClient = Depends(get_runs_client),
):
    """Generate a 3-step email sequence from a stored prompt template + variables."""
    job = GenerationJob(
        kind="sequence",
        app_id=req.app_id,
        key_mode=req.key_mode,
        task_name="single-generation",
        prompt_type=req.type,
        variables=req.variables,
        parent_run_id=req.run_id,
        brand_id=req.brand_id,
        campaign_id=req.campaign_id,
        apollo_enrichment_id=req.apollo_enrichment_id,
        workflow_name=req.workflow_name,
        idempotency_key=req.idempotency_key,
    )
    # Generation must never be blocked by the runs service here.
    outcome = await GenerationOrchestrator(db, runs, FailurePolicy.BEST_EFFORT).run(org, job)
    return GenerateResponse(**outcome.response)


@router.get("/generations", response_model=GenerationsListResponse)
async def list_generations(
        run_id: Optional[str] = Query(default=None, alias="runId"),
        campaign_id: Optional[str] = Query(default=None, alias="campaignId"),
        app_id: Optional[str] = Query(default=None, alias="appId"),
        brand_id: Optional[str] = Query(default=None, alias="brandId"),
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
):
    if not (run_id or campaign_id or app_id or brand_id):
        raise HTTPException(
            status_code=400,
            detail="At least one filter required: runId, campaignId, appId, or brandId",
        )

    stmt = select(Generation).where(Generation.org_id == org.org_id)
    if run_id:
        stmt = stmt.where(Generation.run_id == run_id)
    if campaign_id:
        stmt = stmt.where(Generation.campaign_id == campaign_id)
    if app_id:
        stmt = stmt.where(Generation.app_id == app_id)
    if brand_id:
        stmt = stmt.where(Generation.brand_id == brand_id)

    rows = (await db.execute(stmt.order_by(Generation.created_at.desc()))).scalars().all()
    items: List[GenerationItem] = [GenerationItem.model_validate(r) for r in rows]
    return GenerationsListResponse(generations=items)


@router.get(
    "/generations/by-enrichment/{apollo_enrichment_id}",
    response_model=GenerationSingleResponse,
)
async def get_generation_by_enrichment(
        apollo_enrichment_id: str,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
):
    row = (
        await db.execute(
            select(Generation)
            .where(
                Generation.apollo_enrichment_id == apollo_enrichment_id,
                Generation.org_id == org.org_id,
            )
            .order_by(Generation.created_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Generation not found")
    return GenerationSingleResponse(generation=GenerationItem.model_validate(row))


@router.post("/stats", response_model=StatsResponse)
async def stats(
        req: StatsRequest,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
):
    has_run_ids = bool(req.run_ids)
    if not (has_run_ids or req.app_id or req.brand_id or req.campaign_id):
        raise HTTPException(
            status_code=400,
            detail="At least one filter required: runIds, appId, brandId, or campaignId",
        )

    stmt = select(func.count(Generation.id)).where(
        Generation.org_id == org.org_id,
        Generation.kind == "sequence",
    )
    if has_run_ids:
        stmt = stmt.where(Generation.run_id.in_(req.run_ids))
    if req.app_id:
        stmt = stmt.where(Generation.app_id == req.app_id)
    if req.brand_id:
        stmt = stmt.where(Generation.brand_id == req.brand_id)
    if req.campaign_id:
        stmt = stmt.where(Generation.campaign_id == req.campaign_id)

    n = (await db.execute(stmt)).scalar_one()
    return StatsResponse(stats={"emails_generated": int(n or 0)})
