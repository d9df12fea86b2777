from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional

from gradewise.core.errors import ValidationError


SEVERITIES = ("minor", "major")


@dataclass(frozen=True)
class PenaltyType:
    id: str
    label_en: str
    label_ar: str
    points: int
    description_en: str

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "label_en": self.label_en,
            "label_ar": self.label_ar,
            "points": self.points,
            "description_en": self.description_en,
        }


PENALTY_TYPES: Dict[str, PenaltyType] = {
    t.id: t
    for t in (
        PenaltyType("cheating", "Cheating", "الغش", 10,
                    "Using unauthorized materials or methods during exams or assignments"),
        PenaltyType("attempted_cheating", "Attempted Cheating or Assisting in Cheating",
                    "محاولة الغش أو مساعدة في الغش", 5,
                    "Attempting to cheat or assisting others in cheating during exams"),
        PenaltyType("impersonation", "Impersonation", "الانتحال", 15,
                    "Pretending to be another student or allowing someone to take your place"),
        PenaltyType("exam_disruption", "Exam System Disruption", "تعطيل نظام الاختبار", 8,
                    "Causing disruption or intentionally interfering with exam proceedings"),
        PenaltyType("forgery", "Forgery in School Documents", "التزوير في وثائق المدرسة", 20,
                    "Forging signatures or official school documents"),
        PenaltyType("repetitive_absence_with_excuse", "Repetitive Absence (With Excuse)",
                    "غياب متكرر بعذر", 2, "Frequent absences from classes with excuses"),
        PenaltyType("repetitive_absence_without_excuse", "Repetitive Absence (Without Excuse)",
                    "غياب متكرر بدون عذر", 5, "Frequent absences from classes without valid excuses"),
        PenaltyType("absent_no_excuse", "Absent (No Excuse)", "غياب بدون عذر", 3,
                    "Absence without providing an acceptable excuse"),
        PenaltyType("absent_with_excuse", "Absent (With Excuse)", "غياب بعذر", 1,
                    "Absence with an accepted official excuse"),
        PenaltyType("late", "Late", "تأخر", 1,
                    "Arriving late to class without an acceptable excuse"),
        PenaltyType("other", "Other Violations Disrupting Public Order",
                    "مخالفات أخرى تعطل النظام العام", 5,
                    "Any other violations that disrupt the school's public order"),
    )
}


def penalty_type(type_id: str) -> PenaltyType:
    try:
        return PENALTY_TYPES[type_id]
    except KeyError as exc:
        raise ValidationError(f"Unknown penalty type: {type_id}") from exc


@dataclass(frozen=True)
class PenaltyEvent:
    student_id: str
    type: str
    subject_id: Optional[str] = None
    severity: str = "minor"
    description: str = ""
    action: str = ""
    recorded_by: Optional[str] = None
    points: int = 0
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "subjectId": self.subject_id,
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "action": self.action,
            "recordedBy": self.recorded_by,
            "points": self.points,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict, doc_id: Optional[str] = None) -> "PenaltyEvent":
        kind = PENALTY_TYPES.get(str(data.get("type") or ""))
        points = data.get("points")
        if points is None:
            points = kind.points if kind else 0
        return cls(
            student_id=str(data.get("studentId") or ""),
            type=str(data.get("type") or ""),
            subject_id=data.get("subjectId"),
            severity=data.get("severity") or "minor",
            description=data.get("description") or "",
            action=data.get("action") or "",
            recorded_by=data.get("recordedBy"),
            points=int(points),
            id=doc_id or data.get("id"),
            created_at=data.get("createdAt"),
        )


def total_points(events: Iterable[PenaltyEvent]) -> int:
    return sum(event.points for event in events)
