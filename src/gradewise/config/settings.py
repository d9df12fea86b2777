from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    storage_backend: str = os.getenv("GRADEWISE_STORAGE_BACKEND", "sqlite").strip().lower()
    sqlite_path: str = os.getenv("GRADEWISE_SQLITE_PATH", "gradewise.db")

    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")

    enrollments_collection: str = os.getenv("GRADEWISE_ENROLLMENTS_COLLECTION", "enrollments")
    distributions_collection: str = os.getenv("GRADEWISE_DISTRIBUTIONS_COLLECTION", "subjectMarksDistribution")
    program_rules_collection: str = os.getenv("GRADEWISE_PROGRAM_RULES_COLLECTION", "programGradingRules")
    penalties_collection: str = os.getenv("GRADEWISE_PENALTIES_COLLECTION", "penalties")
    absences_collection: str = os.getenv("GRADEWISE_ABSENCES_COLLECTION", "absences")
    notifications_collection: str = os.getenv("GRADEWISE_NOTIFICATIONS_COLLECTION", "notifications")

    email_function_url: str = os.getenv("EMAIL_FUNCTION_URL", "")
    email_timeout_seconds: float = _float_env("EMAIL_TIMEOUT_SECONDS", 15.0)

    min_gpa: float = _float_env("GRADEWISE_MIN_GPA", 1.5)
    log_level: str = os.getenv("GRADEWISE_LOG_LEVEL", "INFO").upper()

    api_host: str = os.getenv("GRADEWISE_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("GRADEWISE_PORT", "8000"))

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )


settings = Settings()
