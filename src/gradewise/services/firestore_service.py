from datetime import datetime, timezone
from typing import Dict, List, Optional

try:
    from google.api_core.exceptions import GoogleAPICallError, NotFound
    from google.cloud import firestore
    from google.cloud.firestore_v1.base_query import FieldFilter
except ModuleNotFoundError as exc:
    raise ModuleNotFoundError(
        "Missing dependency 'google-cloud-firestore'. Install the project with `pip install -e .`."
    ) from exc

from gradewise.config.settings import settings
from gradewise.core.errors import PersistenceError
from gradewise.services.store import enrollment_id


class FirestoreStore:
    def __init__(
        self,
        project_id: str,
        *,
        enrollments_collection: str = "enrollments",
        distributions_collection: str = "subjectMarksDistribution",
        program_rules_collection: str = "programGradingRules",
        penalties_collection: str = "penalties",
        absences_collection: str = "absences",
        notifications_collection: str = "notifications",
        client: Optional[firestore.Client] = None,
    ) -> None:
        if client is None and not project_id:
            raise PersistenceError("Missing FIREBASE_PROJECT_ID in environment")
        self.db = client or firestore.Client(project=project_id)
        self.enrollments_collection = enrollments_collection
        self.distributions_collection = distributions_collection
        self.program_rules_collection = program_rules_collection
        self.penalties_collection = penalties_collection
        self.absences_collection = absences_collection
        self.notifications_collection = notifications_collection

    @classmethod
    def from_settings(cls) -> "FirestoreStore":
        return cls(
            settings.firebase_project_id,
            enrollments_collection=settings.enrollments_collection,
            distributions_collection=settings.distributions_collection,
            program_rules_collection=settings.program_rules_collection,
            penalties_collection=settings.penalties_collection,
            absences_collection=settings.absences_collection,
            notifications_collection=settings.notifications_collection,
        )

    def _get(self, collection: str, doc_id: str) -> Optional[Dict]:
        try:
            snap = self.db.collection(collection).document(doc_id).get()
        except GoogleAPICallError as exc:
            raise PersistenceError(str(exc)) from exc
        if not snap.exists:
            return None
        return snap.to_dict() or {}

    def _set_merge(self, collection: str, doc_id: str, data: Dict) -> None:
        try:
            self.db.collection(collection).document(doc_id).set(data, merge=True)
        except GoogleAPICallError as exc:
            raise PersistenceError(str(exc)) from exc

    def _add(self, collection: str, data: Dict) -> str:
        try:
            ref = self.db.collection(collection).document()
            ref.set(data)
        except GoogleAPICallError as exc:
            raise PersistenceError(str(exc)) from exc
        return ref.id

    def _stream(self, query) -> List[Dict]:
        try:
            docs = query.stream()
            results: List[Dict] = []
            for doc in docs:
                data = doc.to_dict() or {}
                data["id"] = doc.id
                results.append(data)
        except GoogleAPICallError as exc:
            raise PersistenceError(str(exc)) from exc
        return results

    def get_distribution(self, subject_id: str) -> Optional[Dict]:
        return self._get(self.distributions_collection, subject_id)

    def set_distribution(self, subject_id: str, data: Dict) -> None:
        self._set_merge(self.distributions_collection, subject_id, data)

    def get_program_rules(self, program_id: str) -> Optional[Dict]:
        return self._get(self.program_rules_collection, program_id)

    def set_program_rules(self, program_id: str, data: Dict) -> None:
        self._set_merge(self.program_rules_collection, program_id, data)

    def read_for_merge(self, student_id: str, class_id: str) -> Optional[Dict]:
        return self._get(self.enrollments_collection, enrollment_id(student_id, class_id))

    def write_merged(
        self,
        student_id: str,
        class_id: str,
        subject_id: str,
        mark: Dict,
        enrollment_defaults: Optional[Dict] = None,
    ) -> None:
        ref = self.db.collection(self.enrollments_collection).document(enrollment_id(student_id, class_id))
        now = datetime.now(timezone.utc)
        # Field-path update so concurrent graders of other subjects are not clobbered.
        mark_path = firestore.FieldPath("marks", subject_id).to_api_repr()
        try:
            try:
                ref.update({mark_path: mark, "updatedAt": now})
            except NotFound:
                ref.set(
                    {**(enrollment_defaults or {}), "marks": {subject_id: mark}, "updatedAt": now},
                    merge=True,
                )
        except GoogleAPICallError as exc:
            raise PersistenceError(str(exc)) from exc

    def add_penalty(self, data: Dict) -> str:
        return self._add(self.penalties_collection, data)

    def list_penalties(self, student_id: Optional[str] = None, subject_id: Optional[str] = None) -> List[Dict]:
        query = self.db.collection(self.penalties_collection)
        if student_id:
            query = query.where(filter=FieldFilter("studentId", "==", student_id))
        if subject_id:
            query = query.where(filter=FieldFilter("subjectId", "==", subject_id))
        query = query.order_by("createdAt", direction=firestore.Query.DESCENDING)
        return self._stream(query)

    def add_absence(self, data: Dict) -> str:
        return self._add(self.absences_collection, data)

    def list_absences(
        self,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        semester: Optional[str] = None,
    ) -> List[Dict]:
        query = self.db.collection(self.absences_collection)
        for field_name, value in (("studentId", student_id), ("subjectId", subject_id), ("semester", semester)):
            if value:
                query = query.where(filter=FieldFilter(field_name, "==", value))
        query = query.order_by("date", direction=firestore.Query.DESCENDING)
        return self._stream(query)

    def add_notification(self, data: Dict) -> str:
        return self._add(self.notifications_collection, data)
