import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from gradewise.core.distribution import coerce_0_100
from gradewise.core.errors import ValidationError
from gradewise.core.grade_scale import GradeScaleRule, NON_NUMERIC_RULES, get_scale, variant_for


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradeResult:
    grade: str
    points: Optional[float]
    description: str
    description_ar: str = ""

    def to_dict(self) -> dict:
        return {
            "grade": self.grade,
            "points": self.points,
            "description": self.description,
            "description_ar": self.description_ar,
        }


FALLBACK_GRADE = GradeResult("F", 0.0, "Fail", "راسب")


def _from_rule(rule: GradeScaleRule) -> GradeResult:
    return GradeResult(rule.grade, rule.points, rule.description_en, rule.description_ar)


def resolve_grade(
    total: float,
    is_retake: bool = False,
    *,
    scale: Optional[Sequence[GradeScaleRule]] = None,
) -> GradeResult:
    """Map a weighted total to (grade, points, description).

    Only numeric bands take part; WF/FA/FB are assigned through
    ``non_numeric_grade``. Totals are clamped into [0, 100] with NaN read as
    0. A fractional total that falls between two bands takes the band of its
    floor, so 89.5 resolves to B+. A total that matches no band resolves to
    F/0.0.
    """
    rules = scale if scale is not None else get_scale(variant_for(is_retake))
    score = coerce_0_100(total)

    # Bands have integer bounds, so 89.5 sits between B+ and A; it counts as 89.
    for candidate in (score, float(math.floor(score))):
        for rule in rules:
            if rule.contains(candidate):
                return _from_rule(rule)

    logger.debug("No grade band matched total %.2f; falling back to F", score)
    return FALLBACK_GRADE


def non_numeric_grade(code: str) -> GradeResult:
    for rule in NON_NUMERIC_RULES:
        if rule.grade == code:
            return _from_rule(rule)
    raise ValidationError(f"Unsupported non-numeric grade: {code}")
