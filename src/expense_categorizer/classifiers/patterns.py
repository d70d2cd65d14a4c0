from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np
from rapidfuzz.distance import Levenshtein

from expense_categorizer.domain.conditions import evaluate_condition
from expense_categorizer.domain.text import STOP_WORDS, extract_keywords, normalize_text, tokenize, truncate
from expense_categorizer.logger import get_logger
from expense_categorizer.models import (
    AmountRange,
    AmountRangePayload,
    CategoryPrediction,
    CompositePayload,
    ContainsCondition,
    Correction,
    ExpenseCategory,
    KeywordSetPayload,
    LabelledObservation,
    MerchantPayload,
    Observation,
    Pattern,
    PatternKind,
    RangeCondition,
    TimeSlotPayload,
    utcnow,
)

from .base import Classifier

logger = get_logger(__name__)

MERCHANT_CONTAINMENT_SCORE = 0.9
MERCHANT_SIMILARITY_THRESHOLD = 0.7
AMOUNT_RANGE_SCORE = 0.7
TIME_DAY_SCORE = 0.3
TIME_HOUR_SCORE = 0.4
HOURS_PER_SLOT = 4
CORRECTION_AMOUNT_SPREAD = 0.2

# Lower bounds inclusive, upper bounds exclusive when bucketing
AMOUNT_BRACKETS: tuple[tuple[float, float], ...] = (
    (0.0, 5.0),
    (5.0, 20.0),
    (20.0, 50.0),
    (50.0, 100.0),
    (100.0, 500.0),
    (500.0, 1000.0),
    (1000.0, 1_000_000_000.0),
)


@dataclass(frozen=True)
class HistoryThresholds:
    merchant_min_count: int = 3
    merchant_min_share: float = 0.7
    keyword_min_count: int = 5
    keyword_min_share: float = 0.75
    amount_min_samples: int = 10
    time_min_samples: int = 10
    time_min_share: float = 0.6
    composite_min_count: int = 3
    max_accuracy: float = 0.95


def amount_bracket(amount: float) -> tuple[float, float]:
    for low, high in AMOUNT_BRACKETS:
        if low <= amount < high:
            return low, high
    return AMOUNT_BRACKETS[-1]


def time_slot(hour: int) -> tuple[int, int]:
    start = (hour // HOURS_PER_SLOT) * HOURS_PER_SLOT
    return start, start + HOURS_PER_SLOT - 1


def _distinct_tokens(description: str) -> set[str]:
    return {token for token in tokenize(description) if len(token) > 2 and token not in STOP_WORDS}


class PatternLearner(Classifier):
    def __init__(
        self,
        patterns: list[Pattern] | None = None,
        min_score: float = 0.3,
        max_examples: int = 5,
        thresholds: HistoryThresholds | None = None,
    ) -> None:
        self.patterns: list[Pattern] = list(patterns or [])
        self.min_score = min_score
        self.max_examples = max_examples
        self.thresholds = thresholds or HistoryThresholds()
        self._evaluators: dict[PatternKind, Callable[[Pattern, Observation], float]] = {
            PatternKind.MERCHANT_CATEGORY: self._score_merchant,
            PatternKind.KEYWORD_SET: self._score_keywords,
            PatternKind.AMOUNT_RANGE: self._score_amount,
            PatternKind.TIME_SLOT: self._score_time,
            PatternKind.COMPOSITE: self._score_composite,
        }

    # Prediction

    def classify(self, observation: Observation) -> list[CategoryPrediction]:
        return self.apply_patterns(observation)

    def apply_patterns(self, observation: Observation) -> list[CategoryPrediction]:
        predictions: list[CategoryPrediction] = []
        for pattern in self.patterns:
            score = self.evaluate(pattern, observation)
            if score > self.min_score:
                predictions.append(CategoryPrediction(
                    category=pattern.category,
                    confidence=score * pattern.accuracy,
                    reasoning=[f"Pattern match: {pattern.kind.value} ({pattern.occurrences} occurrences)"],
                ))
        return sorted(predictions, key=lambda prediction: prediction.confidence, reverse=True)

    def evaluate(self, pattern: Pattern, observation: Observation) -> float:
        score = self._evaluators[pattern.kind](pattern, observation)
        return max(0.0, min(1.0, score))

    def _score_merchant(self, pattern: Pattern, observation: Observation) -> float:
        payload: MerchantPayload = pattern.payload
        merchant = truncate(normalize_text(observation.merchant or observation.description))
        known = truncate(normalize_text(payload.merchant))
        if not merchant or not known:
            return 0.0
        if known in merchant or merchant in known:
            return MERCHANT_CONTAINMENT_SCORE
        similarity = Levenshtein.normalized_similarity(merchant, known)
        return similarity if similarity > MERCHANT_SIMILARITY_THRESHOLD else 0.0

    def _score_keywords(self, pattern: Pattern, observation: Observation) -> float:
        payload: KeywordSetPayload = pattern.payload
        if not payload.keywords:
            return 0.0
        description = normalize_text(observation.description)
        hits = sum(1 for keyword in payload.keywords if keyword.lower() in description)
        return hits / len(payload.keywords)

    def _score_amount(self, pattern: Pattern, observation: Observation) -> float:
        payload: AmountRangePayload = pattern.payload
        return AMOUNT_RANGE_SCORE if payload.min <= observation.amount <= payload.max else 0.0

    def _score_time(self, pattern: Pattern, observation: Observation) -> float:
        payload: TimeSlotPayload = pattern.payload
        score = 0.0
        if observation.date.weekday() in payload.days_of_week:
            score += TIME_DAY_SCORE
        if payload.start_hour <= observation.date.hour <= payload.end_hour:
            score += TIME_HOUR_SCORE
        return score

    def _score_composite(self, pattern: Pattern, observation: Observation) -> float:
        payload: CompositePayload = pattern.payload
        if not payload.conditions:
            return 0.0
        satisfied = sum(1 for condition in payload.conditions if evaluate_condition(condition, observation))
        return satisfied / len(payload.conditions)

    # Correction learning

    def learn(self, correction: Correction) -> None:
        self.create_patterns_from_correction(correction)

    def create_patterns_from_correction(self, correction: Correction) -> list[Pattern]:
        snapshot = correction.observation
        category = correction.corrected_category
        touched: list[Pattern] = []

        if snapshot.merchant:
            touched.append(self._create_or_update(
                MerchantPayload(merchant=snapshot.merchant), category, snapshot.description
            ))

        keywords = extract_keywords(snapshot.description)
        if keywords:
            touched.append(self._create_or_update(
                KeywordSetPayload(keywords=keywords), category, snapshot.description
            ))

        touched.append(self._create_or_update(
            AmountRangePayload(
                min=round(snapshot.amount * (1 - CORRECTION_AMOUNT_SPREAD), 2),
                max=round(snapshot.amount * (1 + CORRECTION_AMOUNT_SPREAD), 2),
            ),
            category,
            snapshot.description,
        ))
        return touched

    def _create_or_update(self, payload, category: ExpenseCategory, description: str) -> Pattern:
        existing = next(
            (p for p in self.patterns if p.category == category and p.payload == payload),
            None,
        )
        if existing:
            existing.occurrences += 1
            existing.confidence = min(existing.confidence + 0.1, 1.0)
            existing.last_seen = utcnow()
            self._add_example(existing, description)
            return existing

        pattern = Pattern(
            payload=payload,
            category=category,
            confidence=0.6,
            occurrences=1,
            accuracy=0.8,
        )
        self._add_example(pattern, description)
        self.patterns.append(pattern)
        logger.debug("[LEARN] New %s pattern -> %s", pattern.kind.value, category.value)
        return pattern

    def _add_example(self, pattern: Pattern, description: str) -> None:
        if description and description not in pattern.examples and len(pattern.examples) < self.max_examples:
            pattern.examples.append(description)

    # Bulk training

    def learn_from_history(self, samples: Iterable[LabelledObservation]) -> list[Pattern]:
        """Rebuild the pattern set from categorized historical observations."""
        samples = list(samples)
        patterns: list[Pattern] = []
        patterns.extend(self._merchant_patterns(samples))
        patterns.extend(self._keyword_patterns(samples))
        patterns.extend(self._amount_patterns(samples))
        patterns.extend(self._time_patterns(samples))
        patterns.extend(self._composite_patterns(samples))
        self.patterns = patterns
        logger.info("[TRAIN] Built %s patterns from %s observations.", len(patterns), len(samples))
        return patterns

    def _history_pattern(
        self,
        payload,
        category: ExpenseCategory,
        support: int,
        share: float,
        examples: list[str],
    ) -> Pattern:
        accuracy = min(share, self.thresholds.max_accuracy)
        unique_examples = list(dict.fromkeys(example for example in examples if example))
        return Pattern(
            payload=payload,
            category=category,
            confidence=accuracy,
            occurrences=support,
            accuracy=accuracy,
            examples=unique_examples[: self.max_examples],
        )

    @staticmethod
    def _dominant(counter: Counter) -> tuple[ExpenseCategory, int, float]:
        category, count = counter.most_common(1)[0]
        return category, count, count / sum(counter.values())

    def _merchant_patterns(self, samples: list[LabelledObservation]) -> list[Pattern]:
        counts: dict[str, Counter] = defaultdict(Counter)
        examples: dict[tuple[str, ExpenseCategory], list[str]] = defaultdict(list)
        for sample in samples:
            merchant = truncate(normalize_text(sample.observation.merchant))
            if merchant:
                counts[merchant][sample.category] += 1
                examples[(merchant, sample.category)].append(sample.observation.description)

        patterns = []
        for merchant, counter in counts.items():
            if sum(counter.values()) < self.thresholds.merchant_min_count:
                continue
            category, support, share = self._dominant(counter)
            if share >= self.thresholds.merchant_min_share:
                patterns.append(self._history_pattern(
                    MerchantPayload(merchant=merchant), category, support, share, examples[(merchant, category)]
                ))
        return patterns

    def _keyword_patterns(self, samples: list[LabelledObservation]) -> list[Pattern]:
        counts: dict[str, Counter] = defaultdict(Counter)
        examples: dict[tuple[str, ExpenseCategory], list[str]] = defaultdict(list)
        for sample in samples:
            for token in _distinct_tokens(sample.observation.description):
                counts[token][sample.category] += 1
                examples[(token, sample.category)].append(sample.observation.description)

        patterns = []
        for token in sorted(counts):
            counter = counts[token]
            if sum(counter.values()) < self.thresholds.keyword_min_count:
                continue
            category, support, share = self._dominant(counter)
            if share >= self.thresholds.keyword_min_share:
                patterns.append(self._history_pattern(
                    KeywordSetPayload(keywords=[token]), category, support, share, examples[(token, category)]
                ))
        return patterns

    def _amount_patterns(self, samples: list[LabelledObservation]) -> list[Pattern]:
        by_category: dict[ExpenseCategory, list[float]] = defaultdict(list)
        for sample in samples:
            by_category[sample.category].append(sample.observation.amount)

        patterns = []
        for category, amounts in by_category.items():
            if len(amounts) < self.thresholds.amount_min_samples:
                continue
            q1, q3 = (float(value) for value in np.percentile(amounts, [25, 75]))
            low, high = round(q1, 2), round(q3, 2)
            inside = [s for s in samples if low <= s.observation.amount <= high]
            support = sum(1 for s in inside if s.category == category)
            # Share of all observations inside the envelope that belong to the category
            share = support / len(inside) if inside else 0.0
            patterns.append(self._history_pattern(
                AmountRangePayload(min=low, max=high),
                category,
                support,
                share,
                [s.observation.description for s in inside if s.category == category],
            ))
        return patterns

    def _time_patterns(self, samples: list[LabelledObservation]) -> list[Pattern]:
        counts: dict[tuple[int, int], Counter] = defaultdict(Counter)
        for sample in samples:
            date = sample.observation.date
            counts[(date.weekday(), time_slot(date.hour)[0])][sample.category] += 1

        patterns = []
        for (weekday, start_hour), counter in sorted(counts.items()):
            if sum(counter.values()) < self.thresholds.time_min_samples:
                continue
            category, support, share = self._dominant(counter)
            if share >= self.thresholds.time_min_share:
                _, end_hour = time_slot(start_hour)
                patterns.append(self._history_pattern(
                    TimeSlotPayload(days_of_week=[weekday], start_hour=start_hour, end_hour=end_hour),
                    category,
                    support,
                    share,
                    [],
                ))
        return patterns

    def _composite_patterns(self, samples: list[LabelledObservation]) -> list[Pattern]:
        counts: dict[tuple[str, tuple[float, float]], Counter] = defaultdict(Counter)
        examples: dict[tuple[str, tuple[float, float]], list[str]] = defaultdict(list)
        for sample in samples:
            merchant = truncate(normalize_text(sample.observation.merchant))
            if not merchant:
                continue
            key = (merchant, amount_bracket(sample.observation.amount))
            counts[key][sample.category] += 1
            examples[key].append(sample.observation.description)

        patterns = []
        for (merchant, (low, high)), counter in counts.items():
            # Only pairs that never disagree
            if len(counter) != 1:
                continue
            category, support, share = self._dominant(counter)
            if support < self.thresholds.composite_min_count:
                continue
            payload = CompositePayload(conditions=[
                ContainsCondition(field="merchant", value=merchant),
                RangeCondition(field="amount", value=AmountRange(min=low, max=high)),
            ])
            patterns.append(self._history_pattern(
                payload, category, support, share, examples[(merchant, (low, high))]
            ))
        return patterns

    # Management

    def set_patterns(self, patterns: list[Pattern]) -> None:
        self.patterns = list(patterns)

    def add_pattern(self, pattern: Pattern) -> None:
        self.patterns.append(pattern)

    def get_pattern(self, pattern_id: str) -> Pattern | None:
        return next((pattern for pattern in self.patterns if pattern.id == pattern_id), None)

    def replace_pattern(self, pattern: Pattern) -> bool:
        for index, existing in enumerate(self.patterns):
            if existing.id == pattern.id:
                self.patterns[index] = pattern
                return True
        return False

    def remove_pattern(self, pattern_id: str) -> bool:
        remaining = [pattern for pattern in self.patterns if pattern.id != pattern_id]
        removed = len(remaining) != len(self.patterns)
        self.patterns = remaining
        return removed

    def get_patterns(self) -> list[Pattern]:
        return list(self.patterns)

    def clear_patterns(self) -> None:
        self.patterns = []
