"""
Context router.
Request analysis, budgeting and cached context loading.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from agent_os.context_engine.budget_pipeline import ContextBudgetPipeline, fragments_from
from agent_os.context_engine.loader import analyze_request
from agent_os.context_engine.models import ContextBundle
from agent_os.dependencies import get_budget_pipeline, get_context_service
from agent_os.services.context_service import ContextService

router = APIRouter(prefix="/context", tags=["context"])


class AnalyzeRequest(BaseModel):
    """Request body for request analysis."""

    query: str = Field(..., description="Raw user request")
    context: Dict[str, Any] = Field(default_factory=dict, description="Caller hints such as current_file")


class FragmentIn(BaseModel):
    """One context fragment to budget."""

    id: Optional[str] = Field(None, description="Fragment id")
    content: str = Field(..., description="Fragment text")
    priority: str = Field("normal", description="high | normal | low")
    source_category: str = Field("general", description="Source category")


class BudgetRequest(BaseModel):
    """Request body for budgeting a set of fragments."""

    fragments: List[FragmentIn] = Field(..., description="Fragments in order")
    max_tokens: Optional[int] = Field(None, gt=0, description="Token ceiling; defaults to max_context_size")
    expand: bool = Field(False, description="Expand abbreviations in the result")


class LoadRequest(BaseModel):
    """Request body for loading context for a query."""

    query: str = Field(..., description="Raw user request")
    context: Dict[str, Any] = Field(default_factory=dict, description="Caller hints such as current_file")
    max_tokens: Optional[int] = Field(None, gt=0, description="Token ceiling")


@router.post("/analyze")
async def analyze(request: AnalyzeRequest) -> Dict[str, Any]:
    """Classify a request into loader requirements."""
    return analyze_request(request.query, request.context).to_dict()


@router.post("/budget")
async def budget(
    request: BudgetRequest,
    pipeline: ContextBudgetPipeline = Depends(get_budget_pipeline),
) -> Dict[str, Any]:
    """Run the budget pipeline on the posted fragments."""
    if not request.fragments:
        raise HTTPException(status_code=400, detail="No fragments to budget")
    bundle = ContextBundle(fragments=fragments_from(f.model_dump() for f in request.fragments))
    result = pipeline.enforce_budget(bundle, request.max_tokens)
    if request.expand:
        result = pipeline.expand_bundle(result)
    return result.to_dict()


@router.post("/load")
async def load(
    request: LoadRequest,
    service: ContextService = Depends(get_context_service),
) -> Dict[str, Any]:
    """Analyze, load and budget the context for a query."""
    return await service.process_request(request.query, request.context, request.max_tokens)


@router.get("/stats")
async def stats(
    pipeline: ContextBudgetPipeline = Depends(get_budget_pipeline),
) -> Dict[str, Any]:
    """Running compression statistics and report."""
    return pipeline.compression_report()
