from typing import Dict, Mapping, Optional

from gradewise.core.distribution import COMPONENTS, coerce_0_100


def normalize_marks(raw_marks: Optional[Mapping]) -> Dict[str, float]:
    raw_marks = raw_marks or {}
    return {name: coerce_0_100(raw_marks.get(name, 0)) for name in COMPONENTS}


def compute_total(raw_marks: Optional[Mapping], distribution: Mapping, *, round_to: int = 2) -> float:
    """
    total = Σ(raw[c] * weight[c] / 100) over the seven components.
    Missing, NaN and negative inputs count as 0; values above 100 are clamped.
    """
    marks = normalize_marks(raw_marks)
    total = 0.0
    for name in COMPONENTS:
        total += marks[name] * coerce_0_100(distribution.get(name, 0)) / 100

    return round(min(total, 100.0), round_to)
