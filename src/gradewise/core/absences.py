from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, Optional, Union

from gradewise.core.errors import ValidationError


ABSENCE_LIMIT_PERCENT = 20.0


@dataclass(frozen=True)
class AbsenceType:
    id: str
    label_en: str
    label_ar: str
    deduction: float
    excused: bool


ABSENCE_TYPES: Dict[str, AbsenceType] = {
    t.id: t
    for t in (
        AbsenceType("with_excuse", "With Official Excuse", "بعذر رسمي", 0.25, True),
        AbsenceType("without_excuse", "Without Excuse", "بدون عذر", 0.50, False),
        AbsenceType("bereavement", "Bereavement", "وفاة قريب", 0.0, True),
        AbsenceType(
            "beyond_control",
            "Beyond Control (accident, weather, hospitalization)",
            "أسباب خارجة عن السيطرة",
            0.25,
            True,
        ),
    )
}


def absence_type(type_id: str) -> AbsenceType:
    try:
        return ABSENCE_TYPES[type_id]
    except KeyError as exc:
        raise ValidationError(f"Unknown absence type: {type_id}") from exc


@dataclass
class AbsenceEvent:
    student_id: str
    subject_id: str
    type: str
    date: Union[date, datetime, str, None] = None
    class_id: Optional[str] = None
    semester: Optional[str] = None
    notes: str = ""
    recorded_by: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "subjectId": self.subject_id,
            "classId": self.class_id,
            "type": self.type,
            "date": self.date,
            "semester": self.semester,
            "notes": self.notes,
            "recordedBy": self.recorded_by,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict, doc_id: Optional[str] = None) -> "AbsenceEvent":
        return cls(
            student_id=str(data.get("studentId") or ""),
            subject_id=str(data.get("subjectId") or ""),
            type=str(data.get("type") or ""),
            date=data.get("date"),
            class_id=data.get("classId"),
            semester=data.get("semester"),
            notes=data.get("notes") or "",
            recorded_by=data.get("recordedBy"),
            id=doc_id or data.get("id"),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class AbsenceStats:
    total_absences: int = 0
    with_excuse: int = 0
    without_excuse: int = 0
    percentage: float = 0.0
    attendance_deduction: float = 0.0
    exceeds_limit: bool = False
    will_fail: bool = False

    def to_dict(self) -> Dict:
        return {
            "totalAbsences": self.total_absences,
            "withExcuse": self.with_excuse,
            "withoutExcuse": self.without_excuse,
            "percentage": self.percentage,
            "attendanceDeduction": self.attendance_deduction,
            "exceedsLimit": self.exceeds_limit,
            "willFail": self.will_fail,
        }


def _type_of(event) -> str:
    if isinstance(event, AbsenceEvent):
        return event.type
    return str(event.get("type") or "")


def compute_stats(events: Iterable[Union[AbsenceEvent, Dict]], total_sessions: Optional[int]) -> AbsenceStats:
    """Absence rate, attendance deduction and the automatic-fail flag.

    Any absence rate above 20% fails the subject regardless of earned score.
    Unknown event types still count towards the absence total but carry no
    deduction.
    """
    if not total_sessions or total_sessions <= 0:
        return AbsenceStats()

    total = 0
    with_excuse = 0
    without_excuse = 0
    deduction = 0.0
    for event in events:
        total += 1
        kind = ABSENCE_TYPES.get(_type_of(event))
        if kind is None:
            continue
        if kind.excused:
            with_excuse += 1
        else:
            without_excuse += 1
        deduction += kind.deduction

    percentage = total / total_sessions * 100
    exceeds_limit = percentage > ABSENCE_LIMIT_PERCENT
    return AbsenceStats(
        total_absences=total,
        with_excuse=with_excuse,
        without_excuse=without_excuse,
        percentage=round(percentage, 2),
        attendance_deduction=round(deduction, 2),
        exceeds_limit=exceeds_limit,
        will_fail=exceeds_limit,
    )
