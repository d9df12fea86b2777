from typing import Iterable, Optional, Tuple


GOOD_STANDING = "good"
PROBATION = "probation"


def calculate_gpa(course_results: Iterable[Tuple[float, Optional[float]]], *, round_to: int = 2) -> float:
    """
    course_results: iterable of (credits, points)
    GPA = Σ(credits * points) / Σ(credits), skipping grades without points (WF, FA).
    """
    weighted_sum = 0.0
    total_credits = 0.0

    for credits, points in course_results:
        if credits <= 0:
            raise ValueError("Course credits must be greater than 0")
        if points is None:
            continue
        weighted_sum += credits * points
        total_credits += credits

    if total_credits == 0:
        return 0.0

    return round(weighted_sum / total_credits, round_to)


def academic_standing(gpa: float, min_gpa: float) -> str:
    return GOOD_STANDING if gpa >= min_gpa else PROBATION
