import datetime as dt
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from gradewise.config.logging_config import configure_logging
from gradewise.config.settings import settings
from gradewise.core.absences import ABSENCE_TYPES, AbsenceEvent
from gradewise.core.errors import PersistenceError, ValidationError
from gradewise.core.grade_scale import ScaleVariant, get_scale, variant_for
from gradewise.core.grades import resolve_grade
from gradewise.core.penalties import PENALTY_TYPES, PenaltyEvent
from gradewise.services.absence_service import AbsenceRegister
from gradewise.services.distribution_service import MarksDistributionManager, ProgramGradingRules
from gradewise.services.grading_service import GradingOrchestrator
from gradewise.services.notification_service import NotificationDispatcher
from gradewise.services.penalty_service import PenaltyLedger
from gradewise.services.store import GradingStore, store_from_settings


configure_logging()

app = FastAPI(title="Gradewise API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class DistributionPayload(BaseModel):
    midTermExam: float = 0
    finalExam: float = 0
    homework: float = 0
    labsProjectResearch: float = 0
    quizzes: float = 0
    participation: float = 0
    attendance: float = 0


class GradeRulePayload(BaseModel):
    grade: str
    minScore: Optional[float] = None
    maxScore: Optional[float] = None
    points: Optional[float] = None
    description_en: str = ""
    description_ar: str = ""


class ProgramRulesPayload(BaseModel):
    gradingScale: List[GradeRulePayload]
    retakeGradingScale: List[GradeRulePayload]


class ResolvePayload(BaseModel):
    total: float
    isRetake: bool = False
    programId: Optional[str] = None


class MarksPayload(BaseModel):
    studentId: str = ""
    subjectId: str = ""
    classId: str = ""
    marks: Dict[str, float] = Field(default_factory=dict)
    semester: Optional[str] = None
    academicYear: Optional[str] = None
    totalSessions: Optional[int] = Field(default=None, ge=0)
    sendInAppNotification: bool = False
    studentEmail: Optional[str] = None


class PenaltyPayload(BaseModel):
    studentId: str
    type: str
    subjectId: Optional[str] = None
    severity: str = "minor"
    description: str = ""
    action: str = ""
    sendInAppNotification: bool = False
    studentEmail: Optional[str] = None


class AbsencePayload(BaseModel):
    studentId: str
    subjectId: str
    type: str
    date: Optional[dt.date] = None
    classId: Optional[str] = None
    semester: Optional[str] = None
    notes: str = ""


@lru_cache(maxsize=1)
def get_store() -> GradingStore:
    return store_from_settings()


def _required_uid(x_user_id: Optional[str]) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-id header")
    return x_user_id


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "storage": settings.storage_backend}


@app.get("/distributions/{subject_id}")
def get_distribution(subject_id: str, store: GradingStore = Depends(get_store)) -> Dict:
    weights = MarksDistributionManager(store).get(subject_id)
    return {"subjectId": subject_id, **weights, "total": sum(weights.values())}


@app.put("/distributions/{subject_id}")
def set_distribution(
    subject_id: str,
    payload: DistributionPayload,
    x_user_id: Optional[str] = Header(default=None),
    store: GradingStore = Depends(get_store),
) -> Dict:
    _required_uid(x_user_id)
    try:
        weights = MarksDistributionManager(store).set(subject_id, payload.model_dump())
        return {"subjectId": subject_id, **weights, "total": 100}
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.get("/programs/{program_id}/grading-rules")
def get_program_rules(program_id: str, store: GradingStore = Depends(get_store)) -> Dict:
    try:
        return ProgramGradingRules(store).get(program_id)
    except PersistenceError as exc:
        raise _http_error(exc) from exc


@app.put("/programs/{program_id}/grading-rules")
def set_program_rules(
    program_id: str,
    payload: ProgramRulesPayload,
    x_user_id: Optional[str] = Header(default=None),
    store: GradingStore = Depends(get_store),
) -> Dict:
    _required_uid(x_user_id)
    try:
        return ProgramGradingRules(store).set(
            program_id,
            [rule.model_dump() for rule in payload.gradingScale],
            [rule.model_dump() for rule in payload.retakeGradingScale],
        )
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.get("/grade-scales/{variant}")
def get_grade_scale(variant: str) -> List[Dict]:
    try:
        return [rule.to_dict() for rule in get_scale(ScaleVariant(variant))]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown grade scale: {variant}") from exc


@app.post("/grades/resolve")
def resolve(payload: ResolvePayload, store: GradingStore = Depends(get_store)) -> Dict:
    try:
        scale = None
        if payload.programId:
            scale = ProgramGradingRules(store).scale_for(payload.programId, variant_for(payload.isRetake))
        return resolve_grade(payload.total, payload.isRetake, scale=scale).to_dict()
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.post("/marks")
def submit_marks(
    payload: MarksPayload,
    x_user_id: Optional[str] = Header(default=None),
    store: GradingStore = Depends(get_store),
) -> Dict:
    instructor_id = _required_uid(x_user_id)
    orchestrator = GradingOrchestrator(store, notifier=NotificationDispatcher.from_settings(store))
    try:
        result = orchestrator.submit_marks(
            payload.studentId,
            payload.subjectId,
            payload.classId,
            payload.marks,
            instructor_id,
            semester=payload.semester,
            academic_year=payload.academicYear,
            total_sessions=payload.totalSessions,
            notify=payload.sendInAppNotification or bool(payload.studentEmail),
            student_email=payload.studentEmail,
        )
        return result.to_dict()
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.get("/marks/{student_id}/{class_id}")
def list_marks(
    student_id: str,
    class_id: str,
    subject_id: Optional[str] = None,
    semester: Optional[str] = None,
    academic_year: Optional[str] = None,
    store: GradingStore = Depends(get_store),
) -> List[Dict]:
    try:
        return GradingOrchestrator(store).get_student_marks(
            student_id, class_id, subject_id=subject_id, semester=semester, academic_year=academic_year
        )
    except PersistenceError as exc:
        raise _http_error(exc) from exc


@app.get("/marks/{student_id}/{class_id}/gpa")
def student_gpa(student_id: str, class_id: str, store: GradingStore = Depends(get_store)) -> Dict:
    try:
        summary = GradingOrchestrator(store).student_gpa(student_id, class_id, settings.min_gpa)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return {"gpa": summary.gpa, "standing": summary.standing, "subjects": summary.subjects}


@app.get("/penalties/types")
def penalty_types() -> List[Dict]:
    return [kind.to_dict() for kind in PENALTY_TYPES.values()]


@app.post("/penalties")
def record_penalty(
    payload: PenaltyPayload,
    x_user_id: Optional[str] = Header(default=None),
    store: GradingStore = Depends(get_store),
) -> Dict:
    recorded_by = _required_uid(x_user_id)
    ledger = PenaltyLedger(store, NotificationDispatcher.from_settings(store))
    event = PenaltyEvent(
        student_id=payload.studentId,
        type=payload.type,
        subject_id=payload.subjectId,
        severity=payload.severity,
        description=payload.description,
        action=payload.action,
        recorded_by=recorded_by,
    )
    try:
        stored = ledger.record(
            event,
            notify=payload.sendInAppNotification or bool(payload.studentEmail),
            student_email=payload.studentEmail,
        )
        return stored.to_dict()
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.get("/penalties")
def list_penalties(
    student_id: Optional[str] = None,
    subject_id: Optional[str] = None,
    store: GradingStore = Depends(get_store),
) -> Dict:
    ledger = PenaltyLedger(store)
    try:
        events = ledger.list(student_id, subject_id)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return {
        "items": [event.to_dict() for event in events],
        "totalPoints": sum(event.points for event in events),
    }


@app.get("/absences/types")
def absence_types() -> List[Dict]:
    return [
        {"id": kind.id, "label_en": kind.label_en, "label_ar": kind.label_ar, "deduction": kind.deduction}
        for kind in ABSENCE_TYPES.values()
    ]


@app.post("/absences")
def record_absence(
    payload: AbsencePayload,
    x_user_id: Optional[str] = Header(default=None),
    store: GradingStore = Depends(get_store),
) -> Dict:
    recorded_by = _required_uid(x_user_id)
    event = AbsenceEvent(
        student_id=payload.studentId,
        subject_id=payload.subjectId,
        type=payload.type,
        date=payload.date,
        class_id=payload.classId,
        semester=payload.semester,
        notes=payload.notes,
        recorded_by=recorded_by,
    )
    try:
        return AbsenceRegister(store).record(event).to_dict()
    except (ValidationError, PersistenceError) as exc:
        raise _http_error(exc) from exc


@app.get("/absences")
def list_absences(
    student_id: Optional[str] = None,
    subject_id: Optional[str] = None,
    semester: Optional[str] = None,
    store: GradingStore = Depends(get_store),
) -> List[Dict]:
    try:
        return [event.to_dict() for event in AbsenceRegister(store).list(student_id, subject_id, semester)]
    except PersistenceError as exc:
        raise _http_error(exc) from exc


@app.get("/absences/stats")
def absence_stats(
    student_id: str,
    subject_id: str,
    total_sessions: int,
    semester: Optional[str] = None,
    store: GradingStore = Depends(get_store),
) -> Dict:
    try:
        stats = AbsenceRegister(store).standing(student_id, subject_id, total_sessions, semester)
    except PersistenceError as exc:
        raise _http_error(exc) from exc
    return stats.to_dict()


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
