from expense_categorizer.models import Rule


def should_retrain(correction_count: int, every: int = 10) -> bool:
    """Retrain on every ``every``-th correction; ``every <= 0`` disables retraining."""
    if every <= 0 or correction_count <= 0:
        return False
    return correction_count % every == 0


def should_prune_rule(rule: Rule, accuracy_floor: float, min_usage: int) -> bool:
    if rule.is_user_created:
        return False
    return rule.usage_count >= min_usage and rule.accuracy < accuracy_floor
