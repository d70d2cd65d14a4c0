import threading
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from expense_categorizer.classifiers.base import Classifier
from expense_categorizer.classifiers.heuristics import HeuristicPredictor
from expense_categorizer.classifiers.patterns import PatternLearner
from expense_categorizer.classifiers.rules import RuleMatcher, default_rules
from expense_categorizer.core.configuration import EngineConfig
from expense_categorizer.domain.policies import should_prune_rule, should_retrain
from expense_categorizer.domain.tags import merge_tags
from expense_categorizer.logger import get_logger
from expense_categorizer.models import (
    CategoryPrediction,
    CategoryStats,
    Correction,
    ExpenseCategory,
    LabelledObservation,
    LearningState,
    ModelMetrics,
    Observation,
    ObservationSnapshot,
    Pattern,
    Rule,
    RulePerformance,
    utcnow,
)
from expense_categorizer.storage.base import KeyValueStore, StorageError

logger = get_logger(__name__)

STATE_KEY = "categorization-service-data"

NO_MATCH_CONFIDENCE = 0.1
NO_MATCH_REASON = "no patterns matched"

# Fields callers may not change through update_rule/update_pattern
_IMMUTABLE_FIELDS = {"id", "created_at"}


def combine_predictions(predictions: list[CategoryPrediction], cap: float = 0.95) -> CategoryPrediction:
    """
    Merge independent predictions into one.

    Confidences for the same category are folded with ``score + next * (1 - score)``
    so repeated weak signals saturate instead of adding up. The winning score is
    capped to keep some residual uncertainty.
    """
    if not predictions:
        return CategoryPrediction(
            category=ExpenseCategory.OTHER,
            confidence=NO_MATCH_CONFIDENCE,
            reasoning=[NO_MATCH_REASON],
        )

    scores: dict[ExpenseCategory, float] = {}
    reasoning: dict[ExpenseCategory, list[str]] = {}
    tags: dict[ExpenseCategory, list[str]] = {}
    for prediction in predictions:
        score = scores.get(prediction.category, 0.0)
        scores[prediction.category] = score + prediction.confidence * (1.0 - score)
        reasoning.setdefault(prediction.category, []).extend(prediction.reasoning)
        tags[prediction.category] = merge_tags(tags.get(prediction.category), prediction.suggested_tags)

    # max() keeps the first category seen on ties
    best = max(scores, key=lambda category: scores[category])
    return CategoryPrediction(
        category=best,
        confidence=min(cap, scores[best]),
        reasoning=reasoning[best],
        suggested_tags=tags[best] or None,
    )


class CategorizationEngine:
    def __init__(
        self,
        store: KeyValueStore,
        config: EngineConfig | None = None,
        heuristics: HeuristicPredictor | None = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self._lock = threading.RLock()

        self.rule_matcher = RuleMatcher(default_rules())
        self.pattern_learner = PatternLearner(
            min_score=self.config.pattern_min_score,
            max_examples=self.config.max_pattern_examples,
        )
        self.heuristics = heuristics or HeuristicPredictor()
        self.classifiers: list[Classifier] = [self.rule_matcher, self.pattern_learner, self.heuristics]

        self.corrections: list[Correction] = []
        self.metrics = ModelMetrics(model_version=self.config.model_version)

        self.load()

    # Prediction

    def categorize(self, observation: Observation) -> CategoryPrediction:
        with self._lock:
            predictions: list[CategoryPrediction] = []
            for classifier in self.classifiers:
                emitted = classifier.classify(observation)
                logger.debug(
                    "[PREDICT] %s emitted %s prediction(s) for '%s'",
                    classifier.__class__.__name__,
                    len(emitted),
                    observation.description[:50],
                )
                predictions.extend(emitted)

            result = self.combine(predictions)
            self.metrics.total_predictions += 1
            logger.debug(
                "[PREDICT] '%s' -> %s (confidence: %.2f)",
                observation.description[:50],
                result.category.value,
                result.confidence,
            )
            return result

    def combine(self, predictions: list[CategoryPrediction]) -> CategoryPrediction:
        return combine_predictions(predictions, cap=self.config.combined_confidence_cap)

    # Learning

    def learn_from_correction(
        self,
        observation: Observation,
        original_prediction: CategoryPrediction,
        corrected_category: ExpenseCategory,
        reason: str | None = None,
    ) -> Correction:
        with self._lock:
            correction = Correction(
                original_category=original_prediction.category,
                corrected_category=corrected_category,
                observation=ObservationSnapshot.from_observation(observation),
                reason=reason,
            )
            self._record_correction(correction)

            was_correct = original_prediction.category == corrected_category
            if was_correct:
                self.metrics.correct_predictions += 1
            self._update_category_accuracy(corrected_category, was_correct)

            for classifier in self.classifiers:
                classifier.learn(correction)

            logger.info(
                "[LEARN] '%s': %s -> %s%s",
                observation.description[:50],
                correction.original_category.value,
                corrected_category.value,
                f" ({reason})" if reason else "",
            )

            if should_retrain(self.metrics.total_corrections, self.config.retrain_every):
                self.retrain()

            self.save()
            return correction

    def _record_correction(self, correction: Correction) -> None:
        self.corrections.append(correction)
        overflow = len(self.corrections) - self.config.correction_retention
        if overflow > 0:
            del self.corrections[:overflow]
        self.metrics.total_corrections += 1

    def _update_category_accuracy(self, category: ExpenseCategory, was_correct: bool) -> None:
        stats = self.metrics.category_accuracy.setdefault(category, CategoryStats())
        stats.total += 1
        if was_correct:
            stats.correct += 1

    def retrain(self) -> None:
        """Replay the most recent corrections into the pattern set and prune failing rules."""
        with self._lock:
            recent = self.corrections[-self.config.retrain_window:]
            logger.info("[RETRAIN] Replaying %s recent corrections.", len(recent))
            for correction in recent:
                self.pattern_learner.create_patterns_from_correction(correction)

            if self.config.rule_pruning:
                self._prune_rules()

            self.metrics.last_training = utcnow()

    def _prune_rules(self) -> list[Rule]:
        pruned = [
            rule for rule in self.rule_matcher.get_rules()
            if should_prune_rule(rule, self.config.prune_accuracy_floor, self.config.prune_min_usage)
        ]
        for rule in pruned:
            self.rule_matcher.remove_rule(rule.id)
            logger.info(
                "[RETRAIN] Pruned rule %s (accuracy %.2f after %s uses).",
                rule.id,
                rule.accuracy,
                rule.usage_count,
            )
        return pruned

    def learn_from_history(self, samples: Iterable[LabelledObservation]) -> list[Pattern]:
        with self._lock:
            patterns = self.pattern_learner.learn_from_history(samples)
            self.metrics.last_training = utcnow()
            self.save()
            return patterns

    # Rules

    def create_rule(self, rule: Rule) -> Rule:
        with self._lock:
            created = rule.model_copy(update={
                "usage_count": 0,
                "last_used": None,
                "is_user_created": True,
                "created_at": utcnow(),
            })
            self.rule_matcher.add_rule(created)
            logger.info("[RULES] Created rule %s -> %s", created.id, created.action.category.value)
            self.save()
            return created

    def update_rule(self, rule_id: str, updates: dict[str, Any]) -> Rule | None:
        with self._lock:
            rule = self.rule_matcher.get_rule(rule_id)
            if rule is None:
                return None
            data = rule.model_dump()
            data.update({key: value for key, value in updates.items() if key not in _IMMUTABLE_FIELDS})
            updated = Rule.model_validate(data)
            self.rule_matcher.replace_rule(updated)
            self.save()
            return updated

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self.rule_matcher.remove_rule(rule_id)
            if removed:
                logger.info("[RULES] Deleted rule %s", rule_id)
                self.save()
            return removed

    def get_rules(self) -> list[Rule]:
        with self._lock:
            return [rule.model_copy(deep=True) for rule in self.rule_matcher.get_rules()]

    # Patterns

    def create_pattern(self, pattern: Pattern) -> Pattern:
        with self._lock:
            created = pattern.model_copy(update={"last_seen": utcnow()})
            self.pattern_learner.add_pattern(created)
            self.save()
            return created

    def update_pattern(self, pattern_id: str, updates: dict[str, Any]) -> Pattern | None:
        with self._lock:
            pattern = self.pattern_learner.get_pattern(pattern_id)
            if pattern is None:
                return None
            data = pattern.model_dump()
            data.update({key: value for key, value in updates.items() if key not in _IMMUTABLE_FIELDS})
            updated = Pattern.model_validate(data)
            self.pattern_learner.replace_pattern(updated)
            self.save()
            return updated

    def delete_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            removed = self.pattern_learner.remove_pattern(pattern_id)
            if removed:
                self.save()
            return removed

    def get_patterns(self) -> list[Pattern]:
        with self._lock:
            return [pattern.model_copy(deep=True) for pattern in self.pattern_learner.get_patterns()]

    # Read views

    def get_metrics(self) -> ModelMetrics:
        with self._lock:
            self.metrics.rules_performance = {
                rule.id: RulePerformance(accuracy=rule.accuracy, usage=rule.usage_count)
                for rule in self.rule_matcher.get_rules()
            }
            return self.metrics.model_copy(deep=True)

    def get_corrections(self) -> list[Correction]:
        with self._lock:
            return [correction.model_copy(deep=True) for correction in self.corrections]

    def export_state(self) -> LearningState:
        with self._lock:
            return LearningState(
                rules=self.get_rules(),
                patterns=self.get_patterns(),
                corrections=self.get_corrections()[-self.config.correction_retention:],
                metrics=self.get_metrics(),
                last_saved=utcnow(),
            )

    def clear_learning_data(self) -> None:
        with self._lock:
            self.pattern_learner.clear_patterns()
            self.rule_matcher.set_rules(default_rules())
            self.heuristics.reset()
            self.corrections = []
            self.metrics = ModelMetrics(model_version=self.config.model_version)
            logger.info("[LEARN] Learning data cleared.")
            self.save()

    # Persistence

    def save(self) -> bool:
        with self._lock:
            try:
                self.store.set(STATE_KEY, self.export_state().model_dump_json())
            except StorageError as exc:
                logger.error("[STORE] Failed to save categorization state: %s", exc)
                return False
            return True

    def load(self) -> bool:
        with self._lock:
            try:
                raw = self.store.get(STATE_KEY)
                if raw is None:
                    return False
                state = LearningState.model_validate_json(raw)
            except (StorageError, ValidationError) as exc:
                logger.warning("[STORE] Failed to load categorization state, starting fresh: %s", exc)
                return False

            self.rule_matcher.set_rules(state.rules)
            self.pattern_learner.set_patterns(state.patterns)
            self.corrections = state.corrections[-self.config.correction_retention:]
            self.metrics = state.metrics
            # Taught merchants are rebuilt from the correction log
            for correction in self.corrections:
                self.heuristics.learn(correction)
            logger.info(
                "[STORE] Loaded %s rules, %s patterns and %s corrections.",
                len(state.rules),
                len(state.patterns),
                len(self.corrections),
            )
            return True
