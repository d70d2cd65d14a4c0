import re

MAX_TEXT_LENGTH = 100

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
})

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_text(value: str | None) -> str:
    if not value:
        return ""
    return value.lower().strip()


def truncate(value: str, limit: int = MAX_TEXT_LENGTH) -> str:
    return value[:limit]


def tokenize(value: str | None) -> list[str]:
    cleaned = _NON_WORD.sub("", normalize_text(value))
    return cleaned.split()


def extract_keywords(description: str | None, limit: int = 5) -> list[str]:
    """Distinct non-stopword tokens longer than two characters, in order of appearance."""
    keywords: list[str] = []
    for token in tokenize(description):
        if len(token) <= 2 or token in STOP_WORDS or token in keywords:
            continue
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords
