import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from requests import RequestException

from gradewise.config.settings import settings
from gradewise.core.errors import GradewiseError
from gradewise.services.store import GradingStore


logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget delivery of in-app notifications and optional emails.

    Nothing raised here reaches the caller; a grade or penalty that was
    persisted stays persisted when delivery fails.
    """

    def __init__(self, store: GradingStore, email_function_url: str = "", timeout: float = 15.0) -> None:
        self.store = store
        self.email_function_url = email_function_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, store: GradingStore) -> "NotificationDispatcher":
        return cls(store, settings.email_function_url, settings.email_timeout_seconds)

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        type: str = "info",
        class_id: Optional[str] = None,
    ) -> Optional[str]:
        payload = {
            "userId": user_id,
            "title": title,
            "message": message,
            "type": type,
            "classId": class_id,
            "metadata": metadata or {},
            "deliveryStatus": "sent",
            "read": False,
            "readAt": None,
            "createdAt": datetime.now(timezone.utc),
        }
        try:
            return self.store.add_notification(payload)
        except GradewiseError as exc:
            logger.warning("In-app notification for %s failed: %s", user_id, exc)
            return None

    def send_email(self, to: str, template: str, data: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> bool:
        if not to:
            return False
        if not self.email_function_url:
            logger.info("EMAIL_FUNCTION_URL not configured; skipping %s email", template)
            return False

        body = {"data": {"to": to, "template": template, "data": data, "metadata": metadata or {}}}
        try:
            res = requests.post(self.email_function_url, json=body, timeout=self.timeout)
        except RequestException as exc:
            logger.warning("Email %s to %s failed: %s", template, to, exc)
            return False

        if res.status_code >= 400:
            logger.warning("Email %s to %s rejected with HTTP %s", template, to, res.status_code)
            return False
        return True
