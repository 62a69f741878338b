# FILE: contentgen/api/stats.py

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.core.database import get_db
from contentgen.models.generation import Generation
from contentgen.models.org import Org
from contentgen.schemas.generate import ModelStats, StatsByModelRequest, StatsByModelResponse

router = APIRouter(prefix="/stats", tags=["stats"])


@router.post("/by-model", response_model=StatsByModelResponse)
async def stats_by_model(req: StatsByModelRequest, db: AsyncSession = Depends(get_db)):
    """
    Sequence generation counts grouped by model, for the campaign leaderboard.
    No org header: internal network trust, optionally scoped by clerkOrgId.
    """
    if not req.run_ids:
        return StatsByModelResponse(stats=[])

    stmt = (
        select(Generation.model, Generation.run_id)
        .where(Generation.kind == "sequence", Generation.run_id.in_(req.run_ids))
    )
    if req.app_id:
        stmt = stmt.where(Generation.app_id == req.app_id)
    if req.brand_id:
        stmt = stmt.where(Generation.brand_id == req.brand_id)
    if req.campaign_id:
        stmt = stmt.where(Generation.campaign_id == req.campaign_id)

    if req.clerk_org_id:
        org_id = (
            await db.execute(select(Org.id).where(Org.clerk_org_id == req.clerk_org_id))
        ).scalar_one_or_none()
        if not org_id:
            return StatsByModelResponse(stats=[])
        stmt = stmt.where(Generation.org_id == org_id)

    # Grouped in Python: array_agg is not portable across SQLite/MySQL.
    grouped = {}
    for model, run_id in (await db.execute(stmt)).all():
        entry = grouped.setdefault(model, {"count": 0, "run_ids": set()})
        entry["count"] += 1
        if run_id:
            entry["run_ids"].add(run_id)

    return StatsByModelResponse(stats=[
        ModelStats(model=model, count=entry["count"], run_ids=sorted(entry["run_ids"]))
        for model, entry in sorted(grouped.items())
    ])
