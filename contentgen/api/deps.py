# FILE: contentgen/api/deps.py

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contentgen.core.database import get_db
from contentgen.models.org import Org
from contentgen.services import runs_client
from contentgen.services.generation_service import OrgContext


async def get_org(
        x_clerk_org_id: Optional[str] = Header(default=None),
        db: AsyncSession = Depends(get_db),
) -> OrgContext:
    """
    Organization identity comes from the upstream auth layer via x-clerk-org-id.
    The header is trusted; we only map it to a local org row (created on first use).
    """
    clerk_org_id = (x_clerk_org_id or "").strip()
    if not clerk_org_id:
        raise HTTPException(status_code=401, detail="Missing x-clerk-org-id header")

    org = (await db.execute(select(Org).where(Org.clerk_org_id == clerk_org_id))).scalar_one_or_none()
    if not org:
        db.add(Org(id=str(uuid.uuid4()), clerk_org_id=clerk_org_id))
        try:
            await db.commit()
        except IntegrityError:
            # another request created it first
            await db.rollback()
        org = (await db.execute(select(Org).where(Org.clerk_org_id == clerk_org_id))).scalar_one()

    return OrgContext(org_id=org.id, clerk_org_id=org.clerk_org_id)


def get_runs_client() -> runs_client.RunsClient:
    return runs_client.get_runs_client()
