from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from expense_categorizer.api.dependencies import get_pipeline
from expense_categorizer.api.schemas import RuleCreateRequest, RuleUpdateRequest
from expense_categorizer.models import Rule
from expense_categorizer.services.categorization import CategorizationPipeline

router = APIRouter(prefix="/rules")


@router.get("", response_model=list[Rule])
async def list_rules(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> list[Rule]:
    return await pipeline.rules()


@router.post("", response_model=Rule, status_code=201)
async def create_rule(
    req: RuleCreateRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> Rule:
    return await pipeline.create_rule(Rule(**req.model_dump()))


@router.patch("/{rule_id}", response_model=Rule)
async def update_rule(
    rule_id: str,
    req: RuleUpdateRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> Rule:
    updated = await pipeline.update_rule(rule_id, req.model_dump(exclude_unset=True, exclude_none=True))
    if updated is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return updated


@router.delete("/{rule_id}")
async def delete_rule(
    rule_id: str,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, str]:
    if not await pipeline.delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return {"status": "deleted", "id": rule_id}
