import asyncio
from typing import Any

from expense_categorizer.domain.transactions import TransactionSnapshot
from expense_categorizer.engine import CategorizationEngine
from expense_categorizer.logger import get_logger
from expense_categorizer.models import (
    CategoryPrediction,
    Correction,
    ExpenseCategory,
    LabelledObservation,
    LearningState,
    ModelMetrics,
    Observation,
    Pattern,
    Rule,
)

logger = get_logger(__name__)


class CategorizationPipeline:
    """Runs engine calls off the event loop."""

    def __init__(self, engine: CategorizationEngine) -> None:
        self.engine = engine

    async def predict(self, observation: Observation) -> CategoryPrediction:
        return await asyncio.to_thread(self.engine.categorize, observation)

    async def correct(
        self,
        snapshot: TransactionSnapshot,
        original_prediction: CategoryPrediction,
        corrected_category: ExpenseCategory,
        reason: str | None = None,
    ) -> Correction:
        logger.info(
            "[LEARN] Transaction ID: %s -> Category: '%s' (suggested: '%s')",
            snapshot.id if snapshot.id is not None else "N/A",
            corrected_category.value,
            original_prediction.category.value,
        )
        return await asyncio.to_thread(
            self.engine.learn_from_correction,
            snapshot.to_observation(),
            original_prediction,
            corrected_category,
            reason or snapshot.notes,
        )

    async def train(self, samples: list[LabelledObservation]) -> list[Pattern]:
        logger.info("[TRAIN] Starting bulk training with %s observations...", len(samples))
        return await asyncio.to_thread(self.engine.learn_from_history, samples)

    async def corrections(self) -> list[Correction]:
        return await asyncio.to_thread(self.engine.get_corrections)

    async def metrics(self) -> ModelMetrics:
        return await asyncio.to_thread(self.engine.get_metrics)

    async def export(self) -> LearningState:
        return await asyncio.to_thread(self.engine.export_state)

    async def clear(self) -> None:
        await asyncio.to_thread(self.engine.clear_learning_data)

    # Rules and patterns

    async def rules(self) -> list[Rule]:
        return await asyncio.to_thread(self.engine.get_rules)

    async def create_rule(self, rule: Rule) -> Rule:
        return await asyncio.to_thread(self.engine.create_rule, rule)

    async def update_rule(self, rule_id: str, updates: dict[str, Any]) -> Rule | None:
        return await asyncio.to_thread(self.engine.update_rule, rule_id, updates)

    async def delete_rule(self, rule_id: str) -> bool:
        return await asyncio.to_thread(self.engine.delete_rule, rule_id)

    async def patterns(self) -> list[Pattern]:
        return await asyncio.to_thread(self.engine.get_patterns)

    async def create_pattern(self, pattern: Pattern) -> Pattern:
        return await asyncio.to_thread(self.engine.create_pattern, pattern)

    async def update_pattern(self, pattern_id: str, updates: dict[str, Any]) -> Pattern | None:
        return await asyncio.to_thread(self.engine.update_pattern, pattern_id, updates)

    async def delete_pattern(self, pattern_id: str) -> bool:
        return await asyncio.to_thread(self.engine.delete_pattern, pattern_id)
