import re
from typing import Any

from expense_categorizer.logger import get_logger
from expense_categorizer.models import (
    Condition,
    ContainsCondition,
    EndsWithCondition,
    EqualsCondition,
    Observation,
    RangeCondition,
    RegexCondition,
    StartsWithCondition,
)

logger = get_logger(__name__)


def resolve_field(field: str, observation: Observation) -> Any:
    if field == "merchant":
        return observation.merchant or ""
    if field == "description":
        return observation.description
    if field == "amount":
        return observation.amount
    if field == "date":
        return observation.date.isoformat()
    return None


def _regex_search(pattern: str, value: Any) -> bool:
    try:
        return re.search(pattern, str(value), re.IGNORECASE) is not None
    # Pathological patterns fail to compile with more than re.error
    except (re.error, OverflowError, RecursionError) as exc:
        logger.warning("[RULES] Invalid regex %r treated as non-match: %s", pattern, exc)
        return False


def evaluate_condition(condition: Condition, observation: Observation) -> bool:
    value = resolve_field(condition.field, observation)
    if value is None:
        return False

    if isinstance(condition, ContainsCondition):
        return isinstance(value, str) and condition.value.lower() in value.lower()
    if isinstance(condition, StartsWithCondition):
        return isinstance(value, str) and value.lower().startswith(condition.value.lower())
    if isinstance(condition, EndsWithCondition):
        return isinstance(value, str) and value.lower().endswith(condition.value.lower())
    if isinstance(condition, EqualsCondition):
        if isinstance(value, str) != isinstance(condition.value, str):
            return False
        return value == condition.value
    if isinstance(condition, RegexCondition):
        return _regex_search(condition.value, value)
    if isinstance(condition, RangeCondition):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return condition.value.min <= value <= condition.value.max
    return False
