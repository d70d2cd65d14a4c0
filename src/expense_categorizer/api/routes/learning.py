from typing import Annotated

from fastapi import APIRouter, Depends

from expense_categorizer.api.dependencies import get_pipeline
from expense_categorizer.api.schemas import CorrectionRequest, TrainRequest
from expense_categorizer.models import Correction, LearningState, ModelMetrics
from expense_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.post("/corrections", response_model=Correction)
async def learn_from_correction(
    req: CorrectionRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> Correction:
    return await pipeline.correct(
        req.transaction,
        req.original_prediction,
        req.corrected_category,
        reason=req.reason,
    )


@router.get("/corrections", response_model=list[Correction])
async def list_corrections(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> list[Correction]:
    return await pipeline.corrections()


@router.post("/train")
async def train_from_history(
    req: TrainRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int | str]:
    patterns = await pipeline.train(req.samples)
    return {"status": "success", "trained": len(req.samples), "patterns": len(patterns)}


@router.get("/metrics", response_model=ModelMetrics)
async def get_metrics(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> ModelMetrics:
    return await pipeline.metrics()


@router.get("/export", response_model=LearningState)
async def export_learning_data(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> LearningState:
    return await pipeline.export()


@router.post("/clear-learning-data")
async def clear_learning_data(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, str]:
    await pipeline.clear()
    return {"status": "success", "message": "Learning data cleared"}
