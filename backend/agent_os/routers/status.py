"""
Status router.
Health, recovery counters and the system report of the fallback orchestrator.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from agent_os.dependencies import get_fallback_orchestrator
from agent_os.fallback.orchestrator import FallbackOrchestrator

router = APIRouter(prefix="/status", tags=["status"])


@router.get("")
async def get_status(
    orchestrator: FallbackOrchestrator = Depends(get_fallback_orchestrator),
) -> Dict[str, Any]:
    """Current health, cache and recovery statistics."""
    return orchestrator.system_status()


@router.get("/report")
async def get_report(
    orchestrator: FallbackOrchestrator = Depends(get_fallback_orchestrator),
) -> Dict[str, Any]:
    """System report with recommendations."""
    return orchestrator.system_report()
