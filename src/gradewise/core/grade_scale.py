from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from gradewise.core.errors import ValidationError


class ScaleVariant(str, Enum):
    STANDARD = "standard"
    RETAKE = "retake"


@dataclass(frozen=True)
class GradeScaleRule:
    grade: str
    min_score: Optional[float]
    max_score: Optional[float]
    points: Optional[float]
    description_en: str
    description_ar: str = ""

    @property
    def is_numeric(self) -> bool:
        return self.min_score is not None and self.max_score is not None

    def contains(self, score: float) -> bool:
        return self.is_numeric and self.min_score <= score <= self.max_score

    def to_dict(self) -> Dict:
        data = asdict(self)
        return {
            "grade": data["grade"],
            "minScore": data["min_score"],
            "maxScore": data["max_score"],
            "points": data["points"],
            "description_en": data["description_en"],
            "description_ar": data["description_ar"],
        }


# WF and FA carry no points and are left out of GPA; FB counts as a zero.
NON_NUMERIC_RULES: Tuple[GradeScaleRule, ...] = (
    GradeScaleRule("WF", None, None, None, "Mandatory Withdrawal", "انسحاب إجباري"),
    GradeScaleRule(
        "FA",
        None,
        None,
        None,
        "Failure due to absence from final exam without acceptable excuse",
        "رسوب بسبب تغيبه عن تقديم الاختبار النهائي وعدم تقديم عذر مقبول للغياب",
    ),
    GradeScaleRule(
        "FB",
        None,
        None,
        0.0,
        "Failure due to exceeding allowed absence rate (20%)",
        "رسوب بسبب تجاوز نسبة الغياب المسموح بها (20%)",
    ),
)

_LOWER_BANDS: Tuple[GradeScaleRule, ...] = (
    GradeScaleRule("B", 80, 84, 3.0, "Very Good", "جيد جداً"),
    GradeScaleRule("C+", 75, 79, 2.5, "Good High", "جيد مرتفع"),
    GradeScaleRule("C", 70, 74, 2.0, "Good", "جيد"),
    GradeScaleRule("D+", 65, 69, 1.5, "Acceptable High", "مقبول مرتفع"),
    GradeScaleRule("D", 60, 64, 1.0, "Acceptable", "مقبول"),
    GradeScaleRule("F", 0, 59, 0.0, "Fail", "راسب"),
)

STANDARD_SCALE: Tuple[GradeScaleRule, ...] = (
    GradeScaleRule("A", 90, 100, 4.0, "Excellent", "ممتاز"),
    GradeScaleRule("B+", 85, 89, 3.5, "Very Good High", "جيد جداً مرتفع"),
    *_LOWER_BANDS,
    *NON_NUMERIC_RULES,
)

# Repeating students cannot reach "A"; B+ covers everything from 85 up.
RETAKE_SCALE: Tuple[GradeScaleRule, ...] = (
    GradeScaleRule("B+", 85, 100, 3.5, "Very Good High", "جيد جداً مرتفع"),
    *_LOWER_BANDS,
    *NON_NUMERIC_RULES,
)

SCALES: Dict[ScaleVariant, Tuple[GradeScaleRule, ...]] = {
    ScaleVariant.STANDARD: STANDARD_SCALE,
    ScaleVariant.RETAKE: RETAKE_SCALE,
}


def variant_for(is_retake: bool) -> ScaleVariant:
    return ScaleVariant.RETAKE if is_retake else ScaleVariant.STANDARD


def get_scale(variant: ScaleVariant) -> Tuple[GradeScaleRule, ...]:
    try:
        return SCALES[ScaleVariant(variant)]
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"Unsupported grade scale: {variant}") from exc


def find_rule(grade: str, scales: Iterable[Iterable[GradeScaleRule]] = ()) -> Optional[GradeScaleRule]:
    for scale in scales or SCALES.values():
        for rule in scale:
            if rule.grade == grade:
                return rule
    return None


def grade_description(grade: str, lang: str = "en") -> str:
    rule = find_rule(grade)
    if rule is None:
        return grade
    return rule.description_ar if lang == "ar" else rule.description_en


def rules_from_dicts(rows: Iterable[Dict]) -> List[GradeScaleRule]:
    """Parse a stored grading scale (camelCase documents) into rules.

    Numeric bands must have 0 <= minScore <= maxScore <= 100 and a points
    value; non-numeric rows carry neither bound.
    """
    rules: List[GradeScaleRule] = []
    for index, row in enumerate(rows):
        grade = str(row.get("grade") or "").strip()
        if not grade:
            raise ValidationError(f"Rule {index} is missing a grade")

        low = row.get("minScore")
        high = row.get("maxScore")
        points = row.get("points")
        if (low is None) != (high is None):
            raise ValidationError(f"Rule {grade} must set both minScore and maxScore or neither")

        if low is not None:
            try:
                low, high = float(low), float(high)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Rule {grade} has non-numeric bounds") from exc
            if not 0 <= low <= high <= 100:
                raise ValidationError(f"Rule {grade} bounds must satisfy 0 <= min <= max <= 100")
            if points is None:
                raise ValidationError(f"Rule {grade} needs a points value")

        rules.append(
            GradeScaleRule(
                grade=grade,
                min_score=low,
                max_score=high,
                points=None if points is None else float(points),
                description_en=str(row.get("description_en") or grade),
                description_ar=str(row.get("description_ar") or ""),
            )
        )

    if not any(rule.is_numeric for rule in rules):
        raise ValidationError("A grading scale needs at least one numeric band")
    return rules
