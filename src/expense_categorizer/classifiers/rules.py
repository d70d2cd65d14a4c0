from expense_categorizer.domain.conditions import evaluate_condition
from expense_categorizer.logger import get_logger
from expense_categorizer.models import (
    CategoryPrediction,
    Correction,
    ExpenseCategory,
    Observation,
    RegexCondition,
    Rule,
    RuleAction,
    RuleKind,
    utcnow,
)

from .base import Classifier

logger = get_logger(__name__)


def default_rules() -> list[Rule]:
    """Bootstrap rules seeded into every new engine."""
    return [
        Rule(
            id="grocery-stores",
            kind=RuleKind.MERCHANT,
            condition=RegexCondition(field="merchant", value=r"supermarket|grocery|walmart|target|costco"),
            action=RuleAction(category=ExpenseCategory.FOOD, confidence=0.9, tags=["grocery"]),
            priority=100,
            accuracy=0.9,
        ),
        Rule(
            id="gas-stations",
            kind=RuleKind.MERCHANT,
            condition=RegexCondition(field="merchant", value=r"shell|exxon|\bbp\b|chevron|\bgas\b|fuel"),
            action=RuleAction(category=ExpenseCategory.TRANSPORT, confidence=0.95, tags=["fuel", "gas"]),
            priority=100,
            accuracy=0.95,
        ),
        Rule(
            id="utilities",
            kind=RuleKind.DESCRIPTION,
            condition=RegexCondition(field="description", value=r"electric|water|gas bill|utility|power|sewer"),
            action=RuleAction(category=ExpenseCategory.BILLS, confidence=0.9, tags=["utilities"]),
            priority=90,
            accuracy=0.9,
        ),
        Rule(
            id="restaurants",
            kind=RuleKind.DESCRIPTION,
            condition=RegexCondition(field="description", value=r"restaurant|cafe|pizza|burger|food|dining"),
            action=RuleAction(category=ExpenseCategory.FOOD, confidence=0.8, tags=["dining"]),
            priority=80,
            accuracy=0.8,
        ),
    ]


class RuleMatcher(Classifier):
    def __init__(self, rules: list[Rule] | None = None) -> None:
        self.rules: list[Rule] = list(rules) if rules is not None else default_rules()

    def classify(self, observation: Observation) -> list[CategoryPrediction]:
        return self.apply_rules(observation)

    def learn(self, correction: Correction) -> None:
        observation = correction.observation.to_observation()
        for rule in self.matching_rules(observation):
            self.update_accuracy(rule.id, rule.action.category == correction.corrected_category)

    def apply_rules(self, observation: Observation) -> list[CategoryPrediction]:
        """Evaluate every active rule, highest priority first; several rules may fire."""
        predictions: list[CategoryPrediction] = []
        for rule in self.matching_rules(observation):
            predictions.append(CategoryPrediction(
                category=rule.action.category,
                confidence=rule.action.confidence * rule.accuracy,
                reasoning=[f"Matched rule: {rule.id} ({rule.kind.value}, {rule.condition.operator})"],
                suggested_tags=list(rule.action.tags) if rule.action.tags else None,
            ))
            rule.usage_count += 1
            rule.last_used = utcnow()
        return predictions

    def matching_rules(self, observation: Observation) -> list[Rule]:
        active = sorted(self.get_active_rules(), key=lambda rule: rule.priority, reverse=True)
        return [rule for rule in active if evaluate_condition(rule.condition, observation)]

    def update_accuracy(self, rule_id: str, was_correct: bool) -> Rule | None:
        rule = self.get_rule(rule_id)
        if rule is None:
            return None
        prior_usage = rule.usage_count
        rule.accuracy = (rule.accuracy * prior_usage + (1.0 if was_correct else 0.0)) / (prior_usage + 1)
        rule.usage_count = prior_usage + 1
        logger.debug(
            "[RULES] Rule %s reviewed (%s): accuracy %.3f over %s uses",
            rule.id,
            "correct" if was_correct else "incorrect",
            rule.accuracy,
            rule.usage_count,
        )
        return rule

    def set_rules(self, rules: list[Rule]) -> None:
        self.rules = list(rules)

    def add_rule(self, rule: Rule) -> None:
        self.rules.append(rule)

    def get_rule(self, rule_id: str) -> Rule | None:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    def replace_rule(self, rule: Rule) -> bool:
        for index, existing in enumerate(self.rules):
            if existing.id == rule.id:
                self.rules[index] = rule
                return True
        return False

    def remove_rule(self, rule_id: str) -> bool:
        remaining = [rule for rule in self.rules if rule.id != rule_id]
        removed = len(remaining) != len(self.rules)
        self.rules = remaining
        return removed

    def get_rules(self) -> list[Rule]:
        return list(self.rules)

    def get_active_rules(self) -> list[Rule]:
        return [rule for rule in self.rules if rule.is_active]
