import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from gradewise.core.errors import ValidationError
from gradewise.core.penalties import SEVERITIES, PenaltyEvent, penalty_type, total_points
from gradewise.services.notification_service import NotificationDispatcher
from gradewise.services.store import GradingStore


logger = logging.getLogger(__name__)


class PenaltyLedger:
    """Append-only record of disciplinary penalties.

    Points are bookkeeping only and never change a computed grade.
    """

    def __init__(self, store: GradingStore, notifier: Optional[NotificationDispatcher] = None) -> None:
        self.store = store
        self.notifier = notifier

    def record(
        self,
        event: PenaltyEvent,
        *,
        notify: bool = False,
        student_email: Optional[str] = None,
    ) -> PenaltyEvent:
        if not event.student_id:
            raise ValidationError("studentId is required")
        if event.severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity: {event.severity}")
        kind = penalty_type(event.type)

        stored = replace(event, points=kind.points, created_at=datetime.now(timezone.utc), id=None)
        data = stored.to_dict()
        data.pop("id")
        data["updatedAt"] = stored.created_at
        penalty_id = self.store.add_penalty(data)
        stored = replace(stored, id=penalty_id)
        logger.info("Recorded %s penalty %s for student %s", stored.type, penalty_id, stored.student_id)

        if notify and self.notifier is not None:
            self._notify(stored, kind.label_en, student_email)
        return stored

    def list(self, student_id: Optional[str] = None, subject_id: Optional[str] = None) -> List[PenaltyEvent]:
        rows = self.store.list_penalties(student_id=student_id, subject_id=subject_id)
        return [PenaltyEvent.from_dict(row, row.get("id")) for row in rows]

    def total_points(self, student_id: str, subject_id: Optional[str] = None) -> int:
        return total_points(self.list(student_id, subject_id))

    def _notify(self, event: PenaltyEvent, label: str, student_email: Optional[str]) -> None:
        message = f"A penalty has been recorded: {label}"
        if event.subject_id:
            message += f" for {event.subject_id}"
        self.notifier.notify(
            event.student_id,
            "Academic Penalty Recorded",
            message,
            {
                "penaltyId": event.id,
                "penaltyType": event.type,
                "subjectId": event.subject_id,
                "severity": event.severity,
                "description": event.description,
            },
            type="penalty",
        )
        if student_email:
            self.notifier.send_email(
                student_email,
                "penaltyRecorded",
                {
                    "penaltyType": label,
                    "subjectId": event.subject_id or "General",
                    "description": event.description,
                    "severity": event.severity,
                    "action": event.action,
                },
                {"penaltyId": event.id, "studentId": event.student_id, "subjectId": event.subject_id},
            )
