# ============================================================================
# guardian/server/api.py
# FastAPI application
# ============================================================================
#
# PURPOSE:
# Exposes the analysis service over HTTP. All routes live under /v1.
#
# ERROR CONTRACT:
# - GuardianError  -> its own http_status, body = to_dict()
# - Request validation failures -> 400 with code INPUT_001, same body shape
#
# ============================================================================

from __future__ import annotations

import logging
from typing import Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from guardian import __version__
from guardian.base.config import get_config, setup_logging
from guardian.errors import ErrorCode, GuardianError
from guardian.server.routers import guardian, system
from guardian.server.state import get_service

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Guardian API",
    description="Pre-execution risk analysis of blockchain transactions",
    version=__version__,
)

v1_router = APIRouter(
    prefix="/v1",
    tags=["v1"],
    responses={404: {"description": "Not found"}},
)


@app.exception_handler(GuardianError)
async def guardian_error_handler(request: Request, exc: GuardianError):
    """Convert GuardianError to a structured JSON response."""
    logger.error(f"[API] {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    error = GuardianError(ErrorCode.INPUT_INVALID, "Invalid request", details={"errors": errors})
    logger.info(f"[API] Rejected request to {request.url.path}: {len(errors)} validation errors")
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


@app.on_event("startup")
async def startup_event():
    config = get_config()
    setup_logging(config)
    logger.info(f"Guardian API starting on {config.api_host}:{config.api_port}")
    get_service()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Guardian API shutting down...")
    store = get_service().store
    if store is not None:
        await store.close()


v1_router.include_router(system.router)
v1_router.include_router(guardian.router)
app.include_router(v1_router)


def serve(port: Optional[int] = None, host: Optional[str] = None):
    config = get_config()
    uvicorn.run(app, host=host or config.api_host, port=port or config.api_port, log_level="info")


if __name__ == "__main__":
    serve()
