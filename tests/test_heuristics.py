from datetime import datetime

import pytest

from expense_categorizer.classifiers.heuristics import HeuristicPredictor
from expense_categorizer.models import Correction, ExpenseCategory, Observation, ObservationSnapshot

WEDNESDAY = datetime(2024, 3, 6, 15, 30)
SATURDAY = datetime(2024, 3, 9, 15, 30)


@pytest.fixture
def predictor() -> HeuristicPredictor:
    return HeuristicPredictor()


def test_merchant_exact_match(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_merchant("STARBUCKS #1234")
    assert res is not None
    assert res.category == ExpenseCategory.FOOD
    assert res.confidence == 0.9
    assert res.reasoning == ["Merchant match: starbucks"]


def test_merchant_partial_token_match(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_merchant("Burger Place")
    assert res is not None
    assert res.category == ExpenseCategory.FOOD
    assert res.confidence == 0.7
    assert res.reasoning == ["Partial merchant match: burger king"]


def test_merchant_no_match_returns_none(predictor: HeuristicPredictor) -> None:
    assert predictor.categorize_merchant("Zyxw Qqq") is None
    assert predictor.categorize_merchant("") is None
    assert predictor.categorize_merchant(None) is None


def test_taught_merchant_takes_precedence(predictor: HeuristicPredictor) -> None:
    predictor.update_merchant_mapping("Foo Mart", ExpenseCategory.SHOPPING)
    res = predictor.categorize_merchant("foo mart")
    assert res is not None
    assert res.category == ExpenseCategory.SHOPPING
    assert res.confidence == 0.9


def test_keywords_count_hits_per_category(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_by_keywords("Lunch and coffee at the cafe")
    assert res is not None
    assert res.category == ExpenseCategory.FOOD
    assert res.confidence == pytest.approx(0.7)
    assert res.reasoning == ["Keyword matches: cafe, coffee, lunch"]


def test_keywords_confidence_is_capped(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_by_keywords("restaurant cafe coffee pizza burger food dining")
    assert res is not None
    assert res.confidence == pytest.approx(0.8)


def test_keywords_pick_the_category_with_most_hits(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_by_keywords("water and internet, paid at the store")
    assert res is not None
    assert res.category == ExpenseCategory.BILLS
    assert res.confidence == pytest.approx(0.6)


def test_keywords_match_whole_words_only(predictor: HeuristicPredictor) -> None:
    assert predictor.categorize_by_keywords("override settings") is None


@pytest.mark.parametrize(
    ("amount", "category", "confidence"),
    [
        (1500.0, ExpenseCategory.HOUSING, 0.3),
        (2.5, ExpenseCategory.OTHER, 0.2),
        (50.0, ExpenseCategory.FOOD, 0.3),
    ],
)
def test_amount_signal(
    predictor: HeuristicPredictor, amount: float, category: ExpenseCategory, confidence: float
) -> None:
    res = predictor.categorize_by_amount(amount)
    assert res is not None
    assert res.category == category
    assert res.confidence == confidence


@pytest.mark.parametrize("amount", [10.0, 300.0, 1000.0])
def test_amount_signal_outside_bands(predictor: HeuristicPredictor, amount: float) -> None:
    assert predictor.categorize_by_amount(amount) is None


def test_time_signal_weekend_leisure(predictor: HeuristicPredictor) -> None:
    res = predictor.categorize_by_time(SATURDAY, 60.0)
    assert res is not None
    assert res.category == ExpenseCategory.ENTERTAINMENT
    assert res.confidence == 0.4


@pytest.mark.parametrize(
    ("hour", "category", "confidence"),
    [
        (8, ExpenseCategory.FOOD, 0.3),
        (12, ExpenseCategory.FOOD, 0.4),
        (19, ExpenseCategory.FOOD, 0.4),
        (23, ExpenseCategory.ENTERTAINMENT, 0.3),
        (1, ExpenseCategory.ENTERTAINMENT, 0.3),
    ],
)
def test_time_signal_hour_windows(
    predictor: HeuristicPredictor, hour: int, category: ExpenseCategory, confidence: float
) -> None:
    res = predictor.categorize_by_time(WEDNESDAY.replace(hour=hour), 300.0)
    assert res is not None
    assert res.category == category
    assert res.confidence == confidence


def test_time_signal_afternoon_is_silent(predictor: HeuristicPredictor) -> None:
    assert predictor.categorize_by_time(WEDNESDAY, 300.0) is None


def test_classify_only_returns_matching_signals(predictor: HeuristicPredictor) -> None:
    obs = Observation(description="zzqx", amount=300.0, date=WEDNESDAY)
    assert predictor.classify(obs) == []

    obs = Observation(merchant="Shell", description="fuel", amount=45.0, date=WEDNESDAY)
    predictions = predictor.classify(obs)
    assert [p.category for p in predictions] == [
        ExpenseCategory.TRANSPORT,
        ExpenseCategory.TRANSPORT,
        ExpenseCategory.FOOD,
    ]
    assert all(0 < p.confidence <= 1 for p in predictions)


def test_reset_forgets_taught_merchants(predictor: HeuristicPredictor) -> None:
    predictor.update_merchant_mapping("Foo Mart", ExpenseCategory.SHOPPING)
    predictor.reset()
    assert "foo mart" not in predictor.merchant_mappings


def test_correction_only_teaches_merchants(predictor: HeuristicPredictor) -> None:
    correction = Correction(
        original_category=ExpenseCategory.FOOD,
        corrected_category=ExpenseCategory.SHOPPING,
        observation=ObservationSnapshot(
            description="Weekly groceries run", merchant="Foo Mart", amount=42.0, date=WEDNESDAY,
        ),
    )
    predictor.learn(correction)
    assert next(iter(predictor.merchant_mappings.items())) == ("foo mart", ExpenseCategory.SHOPPING)
    assert predictor.keyword_mappings == HeuristicPredictor().keyword_mappings
