from dataclasses import dataclass

from expense_categorizer.core import settings


@dataclass(frozen=True)
class EngineConfig:
    correction_retention: int = 100
    retrain_every: int = 10
    retrain_window: int = 50
    rule_pruning: bool = True
    prune_accuracy_floor: float = 0.3
    prune_min_usage: int = 20
    pattern_min_score: float = 0.3
    max_pattern_examples: int = 5
    combined_confidence_cap: float = 0.95
    model_version: str = "1.0.0"

    @classmethod
    def from_settings(cls) -> "EngineConfig":
        defaults = cls()
        return cls(
            correction_retention=settings.get_env_int(
                "CORRECTION_RETENTION", defaults.correction_retention, min_value=1
            ),
            retrain_every=settings.get_env_int("RETRAIN_EVERY", defaults.retrain_every, min_value=0),
            retrain_window=settings.get_env_int("RETRAIN_WINDOW", defaults.retrain_window, min_value=1),
            rule_pruning=settings.get_env_bool("RULE_PRUNING", defaults.rule_pruning),
            prune_accuracy_floor=settings.get_env_float(
                "PRUNE_ACCURACY_FLOOR", defaults.prune_accuracy_floor, min_value=0.0, max_value=1.0
            ),
            prune_min_usage=settings.get_env_int("PRUNE_MIN_USAGE", defaults.prune_min_usage, min_value=0),
        )
