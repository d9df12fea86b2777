import math
from typing import Dict, Mapping, Tuple

from gradewise.core.errors import ValidationError


COMPONENTS: Tuple[str, ...] = (
    "midTermExam",
    "finalExam",
    "homework",
    "labsProjectResearch",
    "quizzes",
    "participation",
    "attendance",
)

DEFAULT_DISTRIBUTION: Dict[str, float] = {
    "midTermExam": 20,
    "finalExam": 40,
    "homework": 5,
    "labsProjectResearch": 10,
    "quizzes": 5,
    "participation": 10,
    "attendance": 10,
}

TOTAL_WEIGHT = 100.0
WEIGHT_TOLERANCE = 0.01


def coerce_0_100(value) -> float:
    """Lenient numeric read: anything unusable becomes 0, the rest is clamped."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or number < 0:
        return 0.0
    return min(number, 100.0)


def normalize_weights(distribution: Mapping) -> Dict[str, float]:
    return {name: coerce_0_100(distribution.get(name, 0)) for name in COMPONENTS}


def weights_total(distribution: Mapping) -> float:
    return sum(normalize_weights(distribution).values())


def validate_distribution(distribution: Mapping) -> Dict[str, float]:
    weights = normalize_weights(distribution)
    total = sum(weights.values())
    if abs(total - TOTAL_WEIGHT) > WEIGHT_TOLERANCE:
        raise ValidationError(f"Marks distribution must total 100% (got {round(total, 2)})")
    return weights


def default_distribution() -> Dict[str, float]:
    return dict(DEFAULT_DISTRIBUTION)
