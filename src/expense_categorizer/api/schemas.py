from pydantic import BaseModel

from expense_categorizer.domain.transactions import TransactionSnapshot
from expense_categorizer.models import (
    CategoryPrediction,
    Condition,
    ExpenseCategory,
    LabelledObservation,
    Observation,
    PatternPayload,
    RuleAction,
    RuleKind,
)


class CategorizeRequest(BaseModel):
    observation: Observation


class CorrectionRequest(BaseModel):
    transaction: TransactionSnapshot
    original_prediction: CategoryPrediction
    corrected_category: ExpenseCategory
    reason: str | None = None


class TrainRequest(BaseModel):
    samples: list[LabelledObservation]


class RuleCreateRequest(BaseModel):
    kind: RuleKind
    condition: Condition
    action: RuleAction
    priority: int = 0
    is_active: bool = True


class RuleUpdateRequest(BaseModel):
    kind: RuleKind | None = None
    condition: Condition | None = None
    action: RuleAction | None = None
    priority: int | None = None
    accuracy: float | None = None
    is_active: bool | None = None


class PatternCreateRequest(BaseModel):
    payload: PatternPayload
    category: ExpenseCategory
    confidence: float = 0.6
    accuracy: float = 0.8


class PatternUpdateRequest(BaseModel):
    payload: PatternPayload | None = None
    category: ExpenseCategory | None = None
    confidence: float | None = None
    accuracy: float | None = None
