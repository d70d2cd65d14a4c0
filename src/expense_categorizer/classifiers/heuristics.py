import math
from datetime import datetime

from expense_categorizer.domain.text import normalize_text, tokenize, truncate
from expense_categorizer.models import CategoryPrediction, Correction, ExpenseCategory, Observation

from .base import Classifier

C = ExpenseCategory

DEFAULT_MERCHANTS: dict[str, ExpenseCategory] = {
    # Restaurants
    "mcdonalds": C.FOOD,
    "starbucks": C.FOOD,
    "subway": C.FOOD,
    "pizza hut": C.FOOD,
    "dominos": C.FOOD,
    "kfc": C.FOOD,
    "burger king": C.FOOD,
    "taco bell": C.FOOD,
    "chipotle": C.FOOD,
    "dunkin": C.FOOD,
    # Groceries
    "walmart": C.FOOD,
    "target": C.FOOD,
    "kroger": C.FOOD,
    "safeway": C.FOOD,
    "whole foods": C.FOOD,
    "trader joes": C.FOOD,
    # Transport
    "uber": C.TRANSPORT,
    "lyft": C.TRANSPORT,
    "shell": C.TRANSPORT,
    "exxon": C.TRANSPORT,
    "bp": C.TRANSPORT,
    "chevron": C.TRANSPORT,
    "citgo": C.TRANSPORT,
    # Entertainment
    "netflix": C.ENTERTAINMENT,
    "spotify": C.ENTERTAINMENT,
    "amazon prime": C.ENTERTAINMENT,
    "hulu": C.ENTERTAINMENT,
    "disney plus": C.ENTERTAINMENT,
    "cinema": C.ENTERTAINMENT,
    "theater": C.ENTERTAINMENT,
    # Shopping
    "amazon": C.SHOPPING,
    "ebay": C.SHOPPING,
    "best buy": C.SHOPPING,
    "costco": C.SHOPPING,
    "home depot": C.SHOPPING,
    "lowes": C.SHOPPING,
    # Healthcare
    "cvs": C.HEALTHCARE,
    "walgreens": C.HEALTHCARE,
    "rite aid": C.HEALTHCARE,
    "pharmacy": C.HEALTHCARE,
    "hospital": C.HEALTHCARE,
    "clinic": C.HEALTHCARE,
    # Bills
    "verizon": C.BILLS,
    "att": C.BILLS,
    "tmobile": C.BILLS,
    "comcast": C.BILLS,
    "spectrum": C.BILLS,
    "electric company": C.BILLS,
    "water department": C.BILLS,
    "gas company": C.BILLS,
}

DEFAULT_KEYWORDS: dict[str, ExpenseCategory] = {
    **dict.fromkeys(
        ["restaurant", "cafe", "coffee", "pizza", "burger", "food", "dining",
         "lunch", "dinner", "breakfast", "grocery", "supermarket"],
        C.FOOD,
    ),
    **dict.fromkeys(
        ["gas", "fuel", "parking", "taxi", "ride", "bus", "train", "metro", "toll"],
        C.TRANSPORT,
    ),
    **dict.fromkeys(
        ["electric", "electricity", "water", "gas bill", "internet", "phone",
         "cable", "insurance", "rent", "mortgage"],
        C.BILLS,
    ),
    **dict.fromkeys(
        ["movie", "cinema", "theater", "concert", "game", "entertainment", "streaming"],
        C.ENTERTAINMENT,
    ),
    **dict.fromkeys(
        ["doctor", "hospital", "pharmacy", "medical", "health", "dentist", "medicine"],
        C.HEALTHCARE,
    ),
    **dict.fromkeys(
        ["store", "shop", "clothing", "electronics", "furniture", "online"],
        C.SHOPPING,
    ),
    **dict.fromkeys(
        ["school", "university", "college", "tuition", "books", "course"],
        C.EDUCATION,
    ),
    **dict.fromkeys(
        ["hotel", "flight", "airline", "vacation", "travel", "booking"],
        C.TRAVEL,
    ),
    **dict.fromkeys(
        ["home", "house", "apartment", "maintenance", "repair", "cleaning"],
        C.HOUSING,
    ),
}

LARGE_AMOUNT = 1000.0
SMALL_AMOUNT = 5.0
DAILY_SPEND_RANGE = (20.0, 100.0)
WEEKEND_LEISURE_RANGE = (20.0, 150.0)

# (first hour, last hour, category, confidence, reason)
HOUR_WINDOWS = (
    (7, 9, C.FOOD, 0.3, "Breakfast time pattern"),
    (11, 14, C.FOOD, 0.4, "Lunch time pattern"),
    (17, 21, C.FOOD, 0.4, "Dinner time pattern"),
)
LATE_NIGHT_START = 22
LATE_NIGHT_END = 2


class HeuristicPredictor(Classifier):
    def __init__(
        self,
        merchants: dict[str, ExpenseCategory] | None = None,
        keywords: dict[str, ExpenseCategory] | None = None,
    ) -> None:
        self._base_merchants = dict(DEFAULT_MERCHANTS if merchants is None else merchants)
        self._base_keywords = dict(DEFAULT_KEYWORDS if keywords is None else keywords)
        self.merchant_mappings: dict[str, ExpenseCategory] = dict(self._base_merchants)
        self.keyword_mappings: dict[str, ExpenseCategory] = dict(self._base_keywords)

    def classify(self, observation: Observation) -> list[CategoryPrediction]:
        signals = (
            self.categorize_merchant(observation.merchant or observation.description),
            self.categorize_by_keywords(observation.description),
            self.categorize_by_amount(observation.amount),
            self.categorize_by_time(observation.date, observation.amount),
        )
        return [prediction for prediction in signals if prediction is not None]

    def learn(self, correction: Correction) -> None:
        if correction.observation.merchant:
            self.update_merchant_mapping(correction.observation.merchant, correction.corrected_category)

    def categorize_merchant(self, merchant_text: str | None) -> CategoryPrediction | None:
        merchant = truncate(normalize_text(merchant_text))
        if not merchant:
            return None

        # 1. Direct containment
        for entry, category in self.merchant_mappings.items():
            if entry in merchant or merchant in entry:
                return CategoryPrediction(
                    category=category,
                    confidence=0.9,
                    reasoning=[f"Merchant match: {entry}"],
                )

        # 2. Token overlap
        merchant_words = [word for word in tokenize(merchant) if len(word) > 1]
        if not merchant_words:
            return None
        for entry, category in self.merchant_mappings.items():
            words = entry.split()
            matching = [
                word for word in words
                if any(m_word in word or word in m_word for m_word in merchant_words)
            ]
            if words and len(matching) >= math.ceil(len(words) / 2):
                return CategoryPrediction(
                    category=category,
                    confidence=0.7,
                    reasoning=[f"Partial merchant match: {entry}"],
                )

        return None

    def categorize_by_keywords(self, description: str | None) -> CategoryPrediction | None:
        tokens = tokenize(description)
        if not tokens:
            return None
        padded = f" {' '.join(tokens)} "

        matches: dict[ExpenseCategory, list[str]] = {}
        for keyword, category in self.keyword_mappings.items():
            if f" {keyword} " in padded:
                matches.setdefault(category, []).append(keyword)

        if not matches:
            return None

        # max() keeps the first category on ties
        best_category = max(matches, key=lambda category: len(matches[category]))
        hits = matches[best_category]
        return CategoryPrediction(
            category=best_category,
            confidence=min(0.8, 0.4 + 0.1 * len(hits)),
            reasoning=[f"Keyword matches: {', '.join(hits)}"],
        )

    def categorize_by_amount(self, amount: float) -> CategoryPrediction | None:
        if amount > LARGE_AMOUNT:
            return CategoryPrediction(
                category=C.HOUSING,
                confidence=0.3,
                reasoning=["Large amount typically housing-related"],
            )
        if amount < SMALL_AMOUNT:
            return CategoryPrediction(
                category=C.OTHER,
                confidence=0.2,
                reasoning=["Very small amount"],
            )
        low, high = DAILY_SPEND_RANGE
        if low <= amount <= high:
            return CategoryPrediction(
                category=C.FOOD,
                confidence=0.3,
                reasoning=["Amount typical for dining/grocery"],
            )
        return None

    def categorize_by_time(self, date: datetime, amount: float) -> CategoryPrediction | None:
        hour = date.hour

        low, high = WEEKEND_LEISURE_RANGE
        if date.weekday() >= 5 and low <= amount <= high:
            return CategoryPrediction(
                category=C.ENTERTAINMENT,
                confidence=0.4,
                reasoning=["Weekend spending pattern"],
            )

        for first, last, category, confidence, reason in HOUR_WINDOWS:
            if first <= hour <= last:
                return CategoryPrediction(category=category, confidence=confidence, reasoning=[reason])

        if hour >= LATE_NIGHT_START or hour <= LATE_NIGHT_END:
            return CategoryPrediction(
                category=C.ENTERTAINMENT,
                confidence=0.3,
                reasoning=["Late night spending pattern"],
            )
        return None

    def update_merchant_mapping(self, merchant: str, category: ExpenseCategory) -> None:
        key = truncate(normalize_text(merchant))
        if not key:
            return
        # Taught merchants are checked before the built-in table
        remaining = {entry: cat for entry, cat in self.merchant_mappings.items() if entry != key}
        self.merchant_mappings = {key: category, **remaining}

    def reset(self) -> None:
        self.merchant_mappings = dict(self._base_merchants)
        self.keyword_mappings = dict(self._base_keywords)
