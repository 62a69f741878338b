from fastapi import APIRouter

from contentgen.core.config import SERVICE_NAME

router = APIRouter(tags=["health"])

@router.get("/health")
async def health():
    return {"status": "ok", "service": SERVICE_NAME}
