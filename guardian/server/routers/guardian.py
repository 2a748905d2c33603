from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field, field_validator

from guardian.contracts.schemas import GuardianCheckResponse, SimulationResult
from guardian.engine.matcher import build_analysis_data
from guardian.server.state import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guardian", tags=["guardian"])

FUNCTION_PATH_RE = re.compile(r"^0x[0-9a-fA-F]+::\w+::\w+$")
SENDER_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


class GuardianCheckRequest(BaseModel):
    function_name: str = Field(..., min_length=1, max_length=512)
    type_arguments: List[str] = Field(default_factory=list, max_length=32)
    arguments: List[Any] = Field(default_factory=list, max_length=64)
    sender: Optional[str] = None
    simulation_result: Optional[SimulationResult] = None
    # Persist the report and return a share id
    share: bool = False
    budget_ms: Optional[int] = Field(None, ge=1, le=120_000)

    @field_validator("function_name")
    @classmethod
    def validate_function_name(cls, v: str) -> str:
        v = v.strip()
        if not FUNCTION_PATH_RE.match(v):
            logger.warning(f"Check rejected: malformed function path: {v[:120]}")
            raise ValueError("function_name must look like 0xADDRESS::module::function")
        return v

    @field_validator("sender")
    @classmethod
    def validate_sender(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not SENDER_RE.match(v):
            raise ValueError("sender must be a 0x-prefixed hex address of at most 64 digits")
        return v


@router.post("/check", response_model=GuardianCheckResponse)
async def check_transaction(req: GuardianCheckRequest):
    """Analyze one transaction before it is signed."""
    data = build_analysis_data(
        req.function_name,
        type_arguments=req.type_arguments,
        arguments=req.arguments,
        sender=req.sender,
        simulation_result=req.simulation_result,
    )
    return await get_service().analyze(data, persist=req.share, budget_ms=req.budget_ms)


@router.get("/check/{share_id}", response_model=GuardianCheckResponse)
async def get_shared_check(share_id: str = Path(..., pattern=r"^[A-Za-z0-9_-]{1,64}$")):
    """Re-serve a shared report with its current freshness."""
    return await get_service().get_shared(share_id)


@router.get("/patterns")
async def list_patterns() -> Dict[str, Any]:
    registry = get_service().registry
    return {"patterns": registry.summary(), "stats": registry.stats()}
