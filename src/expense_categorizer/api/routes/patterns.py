from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from expense_categorizer.api.dependencies import get_pipeline
from expense_categorizer.api.schemas import PatternCreateRequest, PatternUpdateRequest
from expense_categorizer.models import Pattern
from expense_categorizer.services.categorization import CategorizationPipeline

router = APIRouter(prefix="/patterns")


@router.get("", response_model=list[Pattern])
async def list_patterns(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> list[Pattern]:
    return await pipeline.patterns()


@router.post("", response_model=Pattern, status_code=201)
async def create_pattern(
    req: PatternCreateRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> Pattern:
    return await pipeline.create_pattern(Pattern(**req.model_dump()))


@router.patch("/{pattern_id}", response_model=Pattern)
async def update_pattern(
    pattern_id: str,
    req: PatternUpdateRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> Pattern:
    updated = await pipeline.update_pattern(pattern_id, req.model_dump(exclude_unset=True, exclude_none=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="Pattern not found")
    return updated


@router.delete("/{pattern_id}")
async def delete_pattern(
    pattern_id: str,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, str]:
    if not await pipeline.delete_pattern(pattern_id):
        raise HTTPException(status_code=404, detail="Pattern not found")
    return {"status": "deleted", "id": pattern_id}
