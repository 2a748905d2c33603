from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter

from guardian import __version__
from guardian.server.state import get_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check():
    """Simple health check endpoint."""
    service = get_service()
    return {
        "status": "ok",
        "version": __version__,
        "patterns": len(service.registry),
        "llm_available": bool(service.augmenter and service.augmenter.available),
        "timestamp": asyncio.get_running_loop().time(),
    }
