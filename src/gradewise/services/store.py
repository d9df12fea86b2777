from typing import Dict, List, Optional, Protocol

from gradewise.config.settings import settings


class GradingStore(Protocol):
    """Document storage used by the grading services.

    Enrollment writes go through ``read_for_merge``/``write_merged`` so that
    only one subject's entry in the shared ``marks`` map is ever touched.
    """

    def get_distribution(self, subject_id: str) -> Optional[Dict]: ...

    def set_distribution(self, subject_id: str, data: Dict) -> None: ...

    def get_program_rules(self, program_id: str) -> Optional[Dict]: ...

    def set_program_rules(self, program_id: str, data: Dict) -> None: ...

    def read_for_merge(self, student_id: str, class_id: str) -> Optional[Dict]: ...

    def write_merged(
        self,
        student_id: str,
        class_id: str,
        subject_id: str,
        mark: Dict,
        enrollment_defaults: Optional[Dict] = None,
    ) -> None: ...

    def add_penalty(self, data: Dict) -> str: ...

    def list_penalties(self, student_id: Optional[str] = None, subject_id: Optional[str] = None) -> List[Dict]: ...

    def add_absence(self, data: Dict) -> str: ...

    def list_absences(
        self,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        semester: Optional[str] = None,
    ) -> List[Dict]: ...

    def add_notification(self, data: Dict) -> str: ...


def enrollment_id(student_id: str, class_id: str) -> str:
    return f"{student_id}_{class_id}"


def store_from_settings() -> GradingStore:
    backend = settings.storage_backend
    if backend == "firestore":
        from gradewise.services.firestore_service import FirestoreStore

        return FirestoreStore.from_settings()
    if backend == "sqlite":
        from gradewise.services.sqlite_store import SqliteStore

        return SqliteStore(settings.sqlite_path)
    raise ValueError(f"Unsupported storage backend: {backend}. Use 'firestore' or 'sqlite'.")
