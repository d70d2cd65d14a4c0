from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from expense_categorizer.domain.tags import normalize_tags
from expense_categorizer.models import ExpenseCategory, Observation


class TransactionSnapshot(BaseModel):
    """A stored transaction as handed back by the ingestion collaborator after a user edit."""

    id: str | int | None = None
    description: str = ""
    amount: float = 0.0
    date: datetime
    merchant: str | None = None
    location: Any | None = None
    category: ExpenseCategory | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)

    @field_validator("merchant", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_observation(self) -> Observation:
        # Refunds arrive as negative amounts; the classifier only sees magnitudes
        return Observation(
            description=self.description,
            amount=abs(self.amount),
            date=self.date,
            merchant=self.merchant,
            location=self.location,
        )
