from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ExpenseCategory(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    BILLS = "Bills"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    HOUSING = "Housing"
    OTHER = "Other"


class Observation(BaseModel):
    description: str
    amount: float = Field(ge=0)
    date: datetime
    merchant: str | None = None
    location: Any | None = None  # passed through, never inspected


class CategoryPrediction(BaseModel):
    category: ExpenseCategory
    confidence: float  # 0.0 to 1.0
    reasoning: list[str] = Field(default_factory=list)
    suggested_tags: list[str] | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


# Conditions, one variant per operator

ConditionField = Literal["merchant", "description", "amount", "date"]


class ContainsCondition(BaseModel):
    operator: Literal["contains"] = "contains"
    field: ConditionField
    value: str


class EqualsCondition(BaseModel):
    operator: Literal["equals"] = "equals"
    field: ConditionField
    value: str | float


class StartsWithCondition(BaseModel):
    operator: Literal["starts_with"] = "starts_with"
    field: ConditionField
    value: str


class EndsWithCondition(BaseModel):
    operator: Literal["ends_with"] = "ends_with"
    field: ConditionField
    value: str


class RegexCondition(BaseModel):
    operator: Literal["regex"] = "regex"
    field: ConditionField
    value: str


class AmountRange(BaseModel):
    min: float
    max: float


class RangeCondition(BaseModel):
    operator: Literal["range"] = "range"
    field: ConditionField
    value: AmountRange


Condition = Annotated[
    ContainsCondition
    | EqualsCondition
    | StartsWithCondition
    | EndsWithCondition
    | RegexCondition
    | RangeCondition,
    Field(discriminator="operator"),
]


class RuleKind(str, Enum):
    MERCHANT = "merchant"
    DESCRIPTION = "description"
    AMOUNT = "amount"
    PATTERN = "pattern"
    MODEL = "model"


class RuleAction(BaseModel):
    category: ExpenseCategory
    confidence: float
    tags: list[str] | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class Rule(BaseModel):
    id: str = Field(default_factory=new_id)
    kind: RuleKind
    condition: Condition
    action: RuleAction
    priority: int = 0
    usage_count: int = 0
    accuracy: float = 0.8
    is_user_created: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    last_used: datetime | None = None

    @field_validator("accuracy", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


# Pattern payloads, one variant per pattern kind

class PatternKind(str, Enum):
    MERCHANT_CATEGORY = "merchant_category"
    KEYWORD_SET = "keyword_set"
    AMOUNT_RANGE = "amount_range"
    TIME_SLOT = "time_slot"
    COMPOSITE = "composite"


class MerchantPayload(BaseModel):
    kind: Literal["merchant_category"] = "merchant_category"
    merchant: str


class KeywordSetPayload(BaseModel):
    kind: Literal["keyword_set"] = "keyword_set"
    keywords: list[str]


class AmountRangePayload(BaseModel):
    kind: Literal["amount_range"] = "amount_range"
    min: float
    max: float


class TimeSlotPayload(BaseModel):
    kind: Literal["time_slot"] = "time_slot"
    days_of_week: list[int]  # Monday == 0
    start_hour: int
    end_hour: int


class CompositePayload(BaseModel):
    kind: Literal["composite"] = "composite"
    conditions: list[Condition]


PatternPayload = Annotated[
    MerchantPayload
    | KeywordSetPayload
    | AmountRangePayload
    | TimeSlotPayload
    | CompositePayload,
    Field(discriminator="kind"),
]


class Pattern(BaseModel):
    id: str = Field(default_factory=new_id)
    payload: PatternPayload
    category: ExpenseCategory
    confidence: float = 0.6
    occurrences: int = 1
    accuracy: float = 0.8
    last_seen: datetime = Field(default_factory=utcnow)
    examples: list[str] = Field(default_factory=list)

    @field_validator("confidence", "accuracy", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)

    @property
    def kind(self) -> PatternKind:
        return PatternKind(self.payload.kind)


class ObservationSnapshot(BaseModel):
    description: str
    amount: float
    date: datetime
    merchant: str | None = None

    @classmethod
    def from_observation(cls, observation: Observation) -> "ObservationSnapshot":
        return cls(
            description=observation.description,
            amount=observation.amount,
            date=observation.date,
            merchant=observation.merchant,
        )

    def to_observation(self) -> Observation:
        return Observation(
            description=self.description,
            amount=max(self.amount, 0.0),
            date=self.date,
            merchant=self.merchant,
        )


class Correction(BaseModel):
    id: str = Field(default_factory=new_id)
    original_category: ExpenseCategory
    corrected_category: ExpenseCategory
    observation: ObservationSnapshot
    timestamp: datetime = Field(default_factory=utcnow)
    reason: str | None = None


def ratio(correct: int, total: int) -> float:
    return correct / total if total > 0 else 0.0


class CategoryStats(BaseModel):
    correct: int = 0
    total: int = 0

    @computed_field
    @property
    def accuracy(self) -> float:
        return ratio(self.correct, self.total)


class RulePerformance(BaseModel):
    accuracy: float
    usage: int


class ModelMetrics(BaseModel):
    total_predictions: int = 0
    correct_predictions: int = 0
    total_corrections: int = 0
    category_accuracy: dict[ExpenseCategory, CategoryStats] = Field(default_factory=dict)
    rules_performance: dict[str, RulePerformance] = Field(default_factory=dict)
    last_training: datetime = Field(default_factory=utcnow)
    model_version: str = "1.0.0"

    @computed_field
    @property
    def accuracy(self) -> float:
        return ratio(self.correct_predictions, self.total_predictions)


class LearningState(BaseModel):
    rules: list[Rule] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    corrections: list[Correction] = Field(default_factory=list)
    metrics: ModelMetrics = Field(default_factory=ModelMetrics)
    last_saved: datetime | None = None


class LabelledObservation(BaseModel):
    observation: Observation
    category: ExpenseCategory
