# FILE: contentgen/server.py

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from contentgen.core.config import CORS_ORIGINS, LOG_LEVEL, SERVICE_NAME
from contentgen.core.database import create_tables, engine
from contentgen.core.errors import GenerationError

from contentgen.api.root import router as root_router
from contentgen.api.generate import router as generate_router
from contentgen.api.content import router as content_router
from contentgen.api.prompts import router as prompts_router
from contentgen.api.stats import router as stats_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("content-generation")

app = FastAPI(title=SERVICE_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ================== ERRORS ==================
# Every failure leaves the service as a flat {"error": "..."} body.

@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": ", ".join(parts) or "Invalid request"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ================== ROUTERS ==================

app.include_router(root_router)
app.include_router(generate_router)
app.include_router(content_router)
app.include_router(prompts_router)
app.include_router(stats_router)


@app.on_event("startup")
async def startup():
    await create_tables()
    logger.info(f"{SERVICE_NAME} started")


@app.on_event("shutdown")
async def shutdown():
    await engine.dispose()
