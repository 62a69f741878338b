# FILE: contentgen/api/prompts.py
"""Prompt template registry. Apps register their templates at startup."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.api.deps import get_org
from contentgen.core.database import get_db
from contentgen.models.prompt import PromptTemplate
from contentgen.schemas.generate import PromptResponse, UpsertPromptRequest
from contentgen.services.generation_service import OrgContext, get_prompt_template

router = APIRouter(prefix="/prompts", tags=["prompts"])
logger = logging.getLogger("content-generation.prompts")


def _to_response(p: PromptTemplate, include_prompt: bool) -> PromptResponse:
    return PromptResponse(
        id=p.id,
        app_id=p.app_id,
        type=p.type,
        prompt=p.prompt if include_prompt else None,
        variables=list(p.variables or []),
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


@router.put("", response_model=PromptResponse, response_model_exclude_none=True)
async def upsert_prompt(
        req: UpsertPromptRequest,
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
):
    """Insert or update the template for (appId, type). Safe to repeat."""
    existing = await get_prompt_template(db, req.app_id, req.type)
    if existing:
        existing.prompt = req.prompt
        existing.variables = list(req.variables)
        existing.updated_at = datetime.utcnow()
        await db.commit()
        logger.info(f"Updated prompt appId={req.app_id} type={req.type}")
        return _to_response(existing, include_prompt=False)

    now = datetime.utcnow()
    prompt = PromptTemplate(
        id=str(uuid.uuid4()),
        app_id=req.app_id,
        type=req.type,
        prompt=req.prompt,
        variables=list(req.variables),
        created_at=now,
        updated_at=now,
    )
    db.add(prompt)
    try:
        await db.commit()
    except IntegrityError:
        # concurrent registration of the same (appId, type): update the winner
        await db.rollback()
        existing = await get_prompt_template(db, req.app_id, req.type)
        if existing is None:
            raise
        existing.prompt = req.prompt
        existing.variables = list(req.variables)
        existing.updated_at = datetime.utcnow()
        await db.commit()
        return _to_response(existing, include_prompt=False)

    logger.info(f"Registered prompt appId={req.app_id} type={req.type}")
    return _to_response(prompt, include_prompt=False)


@router.get("", response_model=PromptResponse)
async def get_prompt(
        app_id: Optional[str] = Query(default=None, alias="appId"),
        type_: Optional[str] = Query(default=None, alias="type"),
        org: OrgContext = Depends(get_org),
        db: AsyncSession = Depends(get_db),
):
    if not app_id or not type_:
        raise HTTPException(status_code=400, detail="appId and type query params required")

    prompt = await get_prompt_template(db, app_id, type_)
    if not prompt:
        raise HTTPException(status_code=404, detail=f"No prompt found for appId={app_id}, type={type_}")
    return _to_response(prompt, include_prompt=True)
