import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from gradewise.core.absences import AbsenceStats
from gradewise.core.errors import ValidationError
from gradewise.core.gpa import academic_standing, calculate_gpa
from gradewise.core.grades import non_numeric_grade, resolve_grade
from gradewise.core.scoring import compute_total, normalize_marks
from gradewise.services.absence_service import AbsenceRegister
from gradewise.services.distribution_service import MarksDistributionManager
from gradewise.services.notification_service import NotificationDispatcher
from gradewise.services.store import GradingStore, enrollment_id


logger = logging.getLogger(__name__)

ABSENCE_FAIL_GRADE = "FB"


@dataclass
class MarksResult:
    id: str
    student_id: str
    subject_id: str
    class_id: str
    marks: Dict[str, float]
    total_score: float
    grade: str
    points: Optional[float]
    is_retake: bool
    is_update: bool
    auto_fail: bool = False
    absence_stats: Optional[AbsenceStats] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "subjectId": self.subject_id,
            "classId": self.class_id,
            "marks": self.marks,
            "totalScore": self.total_score,
            "grade": self.grade,
            "points": self.points,
            "isRetake": self.is_retake,
            "isUpdate": self.is_update,
            "autoFail": self.auto_fail,
            "absenceStats": self.absence_stats.to_dict() if self.absence_stats else None,
        }


@dataclass
class GpaSummary:
    gpa: float
    standing: str
    subjects: List[Dict[str, Any]] = field(default_factory=list)


class GradingOrchestrator:
    def __init__(
        self,
        store: GradingStore,
        *,
        distributions: Optional[MarksDistributionManager] = None,
        absences: Optional[AbsenceRegister] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ) -> None:
        self.store = store
        self.distributions = distributions or MarksDistributionManager(store)
        self.absences = absences or AbsenceRegister(store)
        self.notifier = notifier

    def submit_marks(
        self,
        student_id: str,
        subject_id: str,
        class_id: str,
        raw_marks: Optional[Mapping],
        instructor_id: Optional[str],
        *,
        semester: Optional[str] = None,
        academic_year: Optional[str] = None,
        total_sessions: Optional[int] = None,
        notify: bool = False,
        student_email: Optional[str] = None,
    ) -> MarksResult:
        for name, value in (("studentId", student_id), ("subjectId", subject_id), ("classId", class_id)):
            if not value:
                raise ValidationError(f"{name} is required")

        distribution = self.distributions.load(subject_id)
        marks = normalize_marks(raw_marks)
        total = compute_total(marks, distribution)

        enrollment = self.store.read_for_merge(student_id, class_id)
        is_update = enrollment is not None
        enrollment = enrollment or {}
        is_retake = bool(enrollment.get("isRetake", False))

        result = resolve_grade(total, is_retake)

        stats = None
        auto_fail = False
        if total_sessions is not None:
            stats = self.absences.standing(student_id, subject_id, total_sessions, semester)
            if stats.will_fail:
                auto_fail = True
                result = non_numeric_grade(ABSENCE_FAIL_GRADE)

        previous = (enrollment.get("marks") or {}).get(subject_id) or {}
        now = datetime.now(timezone.utc)
        mark = {
            "subjectId": subject_id,
            "semester": semester or None,
            "academicYear": academic_year or None,
            "marks": marks,
            "totalScore": total,
            "grade": result.grade,
            "points": result.points,
            "isRetake": is_retake,
            "autoFail": auto_fail,
            "instructorId": instructor_id or None,
            "createdAt": previous.get("createdAt") or now,
            "updatedAt": now,
        }
        defaults = {
            "userId": student_id,
            "classId": class_id,
            "role": "student",
            "createdAt": now,
        }
        self.store.write_merged(student_id, class_id, subject_id, mark, defaults)
        logger.info(
            "Graded student %s in %s (class %s): %.2f -> %s",
            student_id,
            subject_id,
            class_id,
            total,
            result.grade,
        )

        outcome = MarksResult(
            id=enrollment_id(student_id, class_id),
            student_id=student_id,
            subject_id=subject_id,
            class_id=class_id,
            marks=marks,
            total_score=total,
            grade=result.grade,
            points=result.points,
            is_retake=is_retake,
            is_update=is_update and bool(previous),
            auto_fail=auto_fail,
            absence_stats=stats,
        )
        if notify and self.notifier is not None:
            self._notify(outcome, student_email)
        return outcome

    def get_student_marks(
        self,
        student_id: str,
        class_id: str,
        subject_id: Optional[str] = None,
        semester: Optional[str] = None,
        academic_year: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        enrollment = self.store.read_for_merge(student_id, class_id)
        if not enrollment:
            return []

        items: List[Dict[str, Any]] = []
        for subj_id, data in (enrollment.get("marks") or {}).items():
            if subject_id and subj_id != subject_id:
                continue
            if semester and data.get("semester") != semester:
                continue
            if academic_year and data.get("academicYear") != academic_year:
                continue
            items.append(
                {
                    "id": enrollment_id(student_id, class_id),
                    "studentId": student_id,
                    "subjectId": data.get("subjectId") or subj_id,
                    "semester": data.get("semester"),
                    "academicYear": data.get("academicYear"),
                    "marks": data.get("marks") or {},
                    "totalScore": data.get("totalScore") or 0,
                    "grade": data.get("grade") or "",
                    "points": data.get("points"),
                    "isRetake": bool(data.get("isRetake", False)),
                    "autoFail": bool(data.get("autoFail", False)),
                    "instructorId": data.get("instructorId"),
                    "createdAt": data.get("createdAt"),
                    "updatedAt": data.get("updatedAt"),
                }
            )

        items.sort(key=lambda row: _sortable(row.get("updatedAt")), reverse=True)
        return items

    def student_gpa(
        self,
        student_id: str,
        class_id: str,
        min_gpa: float,
        credits: Optional[Mapping[str, float]] = None,
    ) -> GpaSummary:
        credits = credits or {}
        rows = self.get_student_marks(student_id, class_id)
        course_results = []
        for row in rows:
            course_results.append((float(credits.get(row["subjectId"], 1)), row["points"]))

        gpa = calculate_gpa(course_results)
        subjects = [
            {"subjectId": row["subjectId"], "grade": row["grade"], "points": row["points"]}
            for row in rows
        ]
        return GpaSummary(gpa=gpa, standing=academic_standing(gpa, min_gpa), subjects=subjects)

    def _notify(self, outcome: MarksResult, student_email: Optional[str]) -> None:
        verb = "updated" if outcome.is_update else "entered"
        title = "Marks Updated" if outcome.is_update else "Marks Entered"
        message = (
            f"Your marks for {outcome.subject_id} have been {verb}. "
            f"Grade: {outcome.grade} ({outcome.total_score:.2f}%)"
        )
        self.notifier.notify(
            outcome.student_id,
            title,
            message,
            {
                "subjectId": outcome.subject_id,
                "totalScore": outcome.total_score,
                "grade": outcome.grade,
                "points": outcome.points,
                "isUpdate": outcome.is_update,
            },
            type="marks",
            class_id=outcome.class_id,
        )
        if student_email:
            self.notifier.send_email(
                student_email,
                "marksUpdated" if outcome.is_update else "marksEntered",
                {
                    "subjectId": outcome.subject_id,
                    "totalScore": f"{outcome.total_score:.2f}",
                    "grade": outcome.grade,
                    "points": outcome.points,
                    "isRetake": outcome.is_retake,
                    "isUpdate": outcome.is_update,
                    **outcome.marks,
                },
                {"subjectId": outcome.subject_id, "studentId": outcome.student_id, "markId": outcome.id},
            )


def _sortable(value) -> str:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    return str(value or "")
