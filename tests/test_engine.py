from datetime import datetime
from unittest.mock import MagicMock

import pytest

from expense_categorizer.core.configuration import EngineConfig
from expense_categorizer.domain.policies import should_prune_rule, should_retrain
from expense_categorizer.engine import STATE_KEY, CategorizationEngine, combine_predictions
from expense_categorizer.models import (
    CategoryPrediction,
    ContainsCondition,
    ExpenseCategory,
    LabelledObservation,
    MerchantPayload,
    Observation,
    Pattern,
    Rule,
    RuleAction,
    RuleKind,
)
from expense_categorizer.storage.base import KeyValueStore, StorageError
from expense_categorizer.storage.file import JsonFileStore
from expense_categorizer.storage.memory import MemoryStore

WEDNESDAY_NOON = datetime(2024, 3, 6, 12, 0)
WEDNESDAY_AFTERNOON = datetime(2024, 3, 6, 15, 30)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(store: MemoryStore) -> CategorizationEngine:
    return CategorizationEngine(store)


def foo_mart() -> Observation:
    return Observation(
        description="Foo Mart purchase",
        merchant="Foo Mart",
        amount=42.0,
        date=WEDNESDAY_NOON,
    )


def prediction(category: ExpenseCategory, confidence: float, **kwargs) -> CategoryPrediction:
    return CategoryPrediction(category=category, confidence=confidence, **kwargs)


def make_rule(**kwargs) -> Rule:
    return Rule(
        kind=RuleKind.MERCHANT,
        condition=ContainsCondition(field="merchant", value="acme"),
        action=RuleAction(category=ExpenseCategory.BILLS, confidence=0.9),
        **kwargs,
    )


# Combination

def test_combine_without_predictions() -> None:
    result = combine_predictions([])
    assert result.category == ExpenseCategory.OTHER
    assert result.confidence == pytest.approx(0.1)
    assert result.reasoning == ["no patterns matched"]


def test_combine_saturates_agreeing_signals() -> None:
    result = combine_predictions([
        prediction(ExpenseCategory.FOOD, 0.5, reasoning=["a"]),
        prediction(ExpenseCategory.FOOD, 0.5, reasoning=["b"]),
    ])
    assert result.category == ExpenseCategory.FOOD
    assert result.confidence == pytest.approx(0.75)
    assert result.reasoning == ["a", "b"]


def test_combine_is_capped() -> None:
    result = combine_predictions([
        prediction(ExpenseCategory.FOOD, 0.9),
        prediction(ExpenseCategory.FOOD, 0.9),
    ])
    assert result.confidence == pytest.approx(0.95)


def test_combine_keeps_winner_reasoning_and_tags() -> None:
    result = combine_predictions([
        prediction(ExpenseCategory.BILLS, 0.6, reasoning=["bills"], suggested_tags=["Utilities"]),
        prediction(ExpenseCategory.FOOD, 0.4, reasoning=["food"], suggested_tags=["dining"]),
        prediction(ExpenseCategory.BILLS, 0.2, reasoning=["more bills"], suggested_tags=["utilities", "monthly"]),
    ])
    assert result.category == ExpenseCategory.BILLS
    assert result.reasoning == ["bills", "more bills"]
    assert result.suggested_tags == ["utilities", "monthly"]


def test_combine_tie_keeps_first_category() -> None:
    result = combine_predictions([
        prediction(ExpenseCategory.TRAVEL, 0.5),
        prediction(ExpenseCategory.HOUSING, 0.5),
    ])
    assert result.category == ExpenseCategory.TRAVEL


# Prediction

def test_categorize_without_signals(engine: CategorizationEngine) -> None:
    obs = Observation(description="zzqx", amount=300.0, date=WEDNESDAY_AFTERNOON)
    result = engine.categorize(obs)
    assert result.category == ExpenseCategory.OTHER
    assert result.confidence == pytest.approx(0.1)
    assert engine.get_metrics().total_predictions == 1


@pytest.mark.parametrize(
    "obs",
    [
        Observation(description="Grocery run", merchant="Walmart", amount=85.0, date=WEDNESDAY_NOON),
        Observation(description="fuel", merchant="Shell", amount=60.0, date=datetime(2024, 3, 9, 23, 0)),
        Observation(description="rent", amount=2500.0, date=WEDNESDAY_AFTERNOON),
        Observation(description="gum", amount=0.0, date=WEDNESDAY_AFTERNOON),
    ],
)
def test_confidence_stays_within_bounds(engine: CategorizationEngine, obs: Observation) -> None:
    result = engine.categorize(obs)
    assert 0.0 < result.confidence <= 0.95


def test_categorize_does_not_persist(engine: CategorizationEngine, store: MemoryStore) -> None:
    engine.categorize(foo_mart())
    assert store.get(STATE_KEY) is None


# Learning

def test_correction_changes_future_predictions(engine: CategorizationEngine) -> None:
    before = engine.categorize(foo_mart())
    assert before.category == ExpenseCategory.FOOD

    engine.learn_from_correction(foo_mart(), before, ExpenseCategory.SHOPPING)

    after = engine.categorize(foo_mart())
    assert after.category == ExpenseCategory.SHOPPING
    assert after.confidence == pytest.approx(0.95)


def test_correction_updates_metrics(engine: CategorizationEngine) -> None:
    wrong = prediction(ExpenseCategory.FOOD, 0.8)
    right = prediction(ExpenseCategory.SHOPPING, 0.8)

    engine.learn_from_correction(foo_mart(), wrong, ExpenseCategory.SHOPPING)
    engine.learn_from_correction(foo_mart(), right, ExpenseCategory.SHOPPING)

    metrics = engine.get_metrics()
    assert metrics.total_corrections == 2
    assert metrics.correct_predictions == 1
    stats = metrics.category_accuracy[ExpenseCategory.SHOPPING]
    assert (stats.correct, stats.total) == (1, 2)
    assert stats.accuracy == pytest.approx(0.5)


def test_correction_log_is_capped(store: MemoryStore) -> None:
    engine = CategorizationEngine(store, EngineConfig(correction_retention=5, retrain_every=0))
    for index in range(12):
        engine.learn_from_correction(
            Observation(description=f"item {index}", amount=10.0 + index, date=WEDNESDAY_NOON),
            prediction(ExpenseCategory.OTHER, 0.1),
            ExpenseCategory.SHOPPING,
        )

    corrections = engine.get_corrections()
    assert len(corrections) == 5
    assert [c.observation.description for c in corrections] == [f"item {i}" for i in range(7, 12)]
    assert engine.get_metrics().total_corrections == 12
    assert len(engine.export_state().corrections) == 5


def test_retrain_runs_every_nth_correction(store: MemoryStore) -> None:
    engine = CategorizationEngine(store, EngineConfig(retrain_every=2))
    engine.retrain = MagicMock()
    for _ in range(5):
        engine.learn_from_correction(foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING)
    assert engine.retrain.call_count == 2


@pytest.mark.parametrize(
    ("count", "every", "expected"),
    [(10, 10, True), (20, 10, True), (9, 10, False), (0, 10, False), (10, 0, False)],
)
def test_should_retrain(count: int, every: int, expected: bool) -> None:
    assert should_retrain(count, every) is expected


def test_should_prune_rule() -> None:
    assert should_prune_rule(make_rule(usage_count=25, accuracy=0.1), 0.3, 20) is True
    assert should_prune_rule(make_rule(usage_count=5, accuracy=0.1), 0.3, 20) is False
    assert should_prune_rule(make_rule(usage_count=25, accuracy=0.5), 0.3, 20) is False
    assert should_prune_rule(make_rule(usage_count=25, accuracy=0.1, is_user_created=True), 0.3, 20) is False


def test_retrain_prunes_failing_rules(engine: CategorizationEngine) -> None:
    failing = make_rule(usage_count=25, accuracy=0.1)
    user_rule = make_rule(usage_count=25, accuracy=0.1, is_user_created=True)
    engine.rule_matcher.add_rule(failing)
    engine.rule_matcher.add_rule(user_rule)

    engine.retrain()

    ids = {rule.id for rule in engine.get_rules()}
    assert failing.id not in ids
    assert user_rule.id in ids
    assert {"grocery-stores", "gas-stations", "utilities", "restaurants"} <= ids


def test_retrain_without_pruning(store: MemoryStore) -> None:
    engine = CategorizationEngine(store, EngineConfig(rule_pruning=False))
    failing = make_rule(usage_count=25, accuracy=0.1)
    engine.rule_matcher.add_rule(failing)
    engine.retrain()
    assert engine.rule_matcher.get_rule(failing.id) is not None


def test_retrain_replays_recent_corrections(store: MemoryStore) -> None:
    engine = CategorizationEngine(store, EngineConfig(retrain_every=0))
    engine.learn_from_correction(foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING)
    engine.retrain()
    assert all(pattern.occurrences == 2 for pattern in engine.get_patterns())


def test_learn_from_history_saves(engine: CategorizationEngine, store: MemoryStore) -> None:
    samples = [
        LabelledObservation(
            observation=Observation(description="invoice", merchant="Acme", amount=99.0, date=WEDNESDAY_NOON),
            category=ExpenseCategory.BILLS,
        )
        for _ in range(3)
    ]
    patterns = engine.learn_from_history(samples)
    assert any(isinstance(p.payload, MerchantPayload) for p in patterns)
    assert store.get(STATE_KEY) is not None


# Rule and pattern management

def test_rule_crud(engine: CategorizationEngine) -> None:
    created = engine.create_rule(make_rule(usage_count=7))
    assert created.is_user_created is True
    assert created.usage_count == 0

    updated = engine.update_rule(created.id, {
        "id": "hijacked",
        "priority": 50,
        "condition": {"operator": "equals", "field": "merchant", "value": "Acme"},
    })
    assert updated.id == created.id
    assert updated.priority == 50
    assert updated.condition.operator == "equals"

    assert engine.update_rule("missing", {"priority": 1}) is None
    assert engine.delete_rule(created.id) is True
    assert engine.delete_rule(created.id) is False


def test_get_rules_returns_copies(engine: CategorizationEngine) -> None:
    engine.get_rules()[0].priority = -1
    assert all(rule.priority != -1 for rule in engine.get_rules())


def test_pattern_crud(engine: CategorizationEngine) -> None:
    created = engine.create_pattern(Pattern(payload=MerchantPayload(merchant="acme"), category=ExpenseCategory.BILLS))
    assert [p.id for p in engine.get_patterns()] == [created.id]

    updated = engine.update_pattern(created.id, {"category": "Shopping"})
    assert updated.category == ExpenseCategory.SHOPPING

    assert engine.update_pattern("missing", {"category": "Food"}) is None
    assert engine.delete_pattern(created.id) is True
    assert engine.get_patterns() == []


def test_metrics_include_rule_performance(engine: CategorizationEngine) -> None:
    metrics = engine.get_metrics()
    assert metrics.rules_performance["gas-stations"].accuracy == pytest.approx(0.95)
    assert metrics.rules_performance["gas-stations"].usage == 0


def test_clear_learning_data(engine: CategorizationEngine) -> None:
    engine.create_rule(make_rule())
    engine.learn_from_correction(foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING)

    engine.clear_learning_data()

    assert engine.get_corrections() == []
    assert engine.get_patterns() == []
    assert {rule.id for rule in engine.get_rules()} == {
        "grocery-stores", "gas-stations", "utilities", "restaurants",
    }
    assert engine.get_metrics().total_corrections == 0
    assert "foo mart" not in engine.heuristics.merchant_mappings


# Persistence

def test_state_survives_restart(store: MemoryStore) -> None:
    first = CategorizationEngine(store)
    first.create_rule(make_rule())
    first.learn_from_correction(foo_mart(), first.categorize(foo_mart()), ExpenseCategory.SHOPPING)

    second = CategorizationEngine(store)

    assert second.get_rules() == first.get_rules()
    assert second.get_patterns() == first.get_patterns()
    assert second.get_corrections() == first.get_corrections()
    assert second.get_metrics() == first.get_metrics()
    assert second.categorize(foo_mart()).category == ExpenseCategory.SHOPPING


def test_state_survives_restart_on_disk(tmp_path) -> None:
    path = str(tmp_path / "state" / "categorizer.json")
    first = CategorizationEngine(JsonFileStore(path))
    first.learn_from_correction(foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING)

    second = CategorizationEngine(JsonFileStore(path))

    assert len(second.get_corrections()) == 1
    assert len(second.get_patterns()) == 3


def test_failed_save_is_not_raised() -> None:
    store = MagicMock(spec=KeyValueStore)
    store.get.return_value = None
    store.set.side_effect = StorageError("disk full")

    engine = CategorizationEngine(store)
    correction = engine.learn_from_correction(
        foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING
    )

    assert correction.corrected_category == ExpenseCategory.SHOPPING
    assert len(engine.get_corrections()) == 1
    assert engine.save() is False


def test_unreadable_state_starts_fresh() -> None:
    engine = CategorizationEngine(MemoryStore({STATE_KEY: "not json"}))
    assert len(engine.get_rules()) == 4
    assert engine.get_corrections() == []


def test_failed_load_starts_fresh() -> None:
    store = MagicMock(spec=KeyValueStore)
    store.get.side_effect = StorageError("locked")
    engine = CategorizationEngine(store)
    assert engine.load() is False
    assert len(engine.get_rules()) == 4


def test_undecodable_state_file_starts_fresh(tmp_path) -> None:
    path = tmp_path / "categorizer.json"
    path.write_bytes(b"\xff\xfe")

    engine = CategorizationEngine(JsonFileStore(str(path)))
    assert len(engine.get_rules()) == 4

    engine.learn_from_correction(foo_mart(), prediction(ExpenseCategory.FOOD, 0.5), ExpenseCategory.SHOPPING)
    assert len(CategorizationEngine(JsonFileStore(str(path))).get_corrections()) == 1
