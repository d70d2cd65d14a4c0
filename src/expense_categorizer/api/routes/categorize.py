from typing import Annotated

from fastapi import APIRouter, Depends

from expense_categorizer.api.dependencies import get_pipeline
from expense_categorizer.api.schemas import CategorizeRequest
from expense_categorizer.models import CategoryPrediction, ExpenseCategory
from expense_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.post("/categorize", response_model=CategoryPrediction)
async def categorize_observation(
    req: CategorizeRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> CategoryPrediction:
    return await pipeline.predict(req.observation)


@router.get("/categories")
async def get_categories() -> list[str]:
    return [category.value for category in ExpenseCategory]
