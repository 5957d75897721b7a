from typing import Iterable, List

from darktrack.schemas.scan import BreachRecord

SEVERITY_POINTS = {
    "high": 20,
    "medium": 10,
    "low": 5,
}

PER_BREACH_POINTS = 10
MAX_BASE_SCORE = 40
SENSITIVE_BONUS = 10
MAX_SCORE = 100


def calculate_risk_score(breaches: Iterable[BreachRecord]) -> int:
    """
    Aggregate 0-100 exposure score.

    A sensitive breach is counted twice: once through its high severity
    and again through the sensitive bonus. Stored scores depend on this.
    """
    records: List[BreachRecord] = list(breaches)
    if not records:
        return 0

    base_score = min(len(records) * PER_BREACH_POINTS, MAX_BASE_SCORE)
    severity_score = sum(SEVERITY_POINTS.get(b.severity, SEVERITY_POINTS["low"]) for b in records)
    sensitive_score = sum(SENSITIVE_BONUS for b in records if b.is_sensitive)

    total = min(base_score + severity_score + sensitive_score, MAX_SCORE)
    return int(round(total))


def secured_data_percentage(risk_score: int) -> int:
    return MAX_SCORE - risk_score


def profiles_detected(breach_count: int) -> int:
    # Placeholder signal until profile discovery exists.
    return 1 if breach_count > 0 else 0
