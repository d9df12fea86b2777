import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import List, Optional

from gradewise.core.absences import AbsenceEvent, AbsenceStats, absence_type, compute_stats
from gradewise.core.errors import ValidationError
from gradewise.services.store import GradingStore


logger = logging.getLogger(__name__)


def _date_text(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class AbsenceRegister:
    def __init__(self, store: GradingStore) -> None:
        self.store = store

    def record(self, event: AbsenceEvent) -> AbsenceEvent:
        if not event.student_id:
            raise ValidationError("studentId is required")
        if not event.subject_id:
            raise ValidationError("subjectId is required")
        absence_type(event.type)

        stored = replace(
            event,
            date=_date_text(event.date) or datetime.now(timezone.utc).date().isoformat(),
            created_at=datetime.now(timezone.utc),
            id=None,
        )
        data = stored.to_dict()
        data.pop("id")
        absence_id = self.store.add_absence(data)
        logger.info("Recorded %s absence for student %s in %s", stored.type, stored.student_id, stored.subject_id)
        return replace(stored, id=absence_id)

    def list(
        self,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        semester: Optional[str] = None,
    ) -> List[AbsenceEvent]:
        rows = self.store.list_absences(student_id=student_id, subject_id=subject_id, semester=semester)
        return [AbsenceEvent.from_dict(row, row.get("id")) for row in rows]

    def standing(
        self,
        student_id: str,
        subject_id: str,
        total_sessions: Optional[int],
        semester: Optional[str] = None,
    ) -> AbsenceStats:
        return compute_stats(self.list(student_id, subject_id, semester), total_sessions)
