"""Expo push notification wrapper.

Every dispatched notification is persisted as a Notification row (the in-app
inbox) and, when the user has registered devices, pushed through the Expo
push API. Delivery is fire-and-forget: callers dispatch only after their own
change has committed, and nothing here raises.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import requests
from sqlmodel import Session, select

from hockey import settings
from hockey.models.notification import Notification, UserDevice

logger = logging.getLogger(__name__)

# Expo rejects bodies above 4KB; keep well under it
MAX_BODY_LENGTH = 1000


@dataclass
class PendingNotification:
    """A notification queued by a service while its transaction is still open."""

    user_id: int
    type: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class PushNotificationService:
    """
    Wrapper around the Expo push API.

    Reads configuration from settings:
      - PUSH_ENABLED
      - EXPO_PUSH_URL
      - EXPO_ACCESS_TOKEN

    If push is disabled, operates in dry-run mode
    (logs messages and records them, but doesn't send).
    """

    def __init__(self, http: Optional[requests.Session] = None):
        self.url = settings.EXPO_PUSH_URL
        self.access_token = settings.EXPO_ACCESS_TOKEN
        self.timeout = settings.PUSH_TIMEOUT_SECONDS
        self.http = http or requests.Session()
        self.dry_run = not settings.PUSH_ENABLED

        if self.dry_run:
            logger.info("Push delivery disabled. Running in dry-run mode. Set PUSH_ENABLED=true to send.")

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def send_push(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, Any]] = None) -> dict:
        """
        Send one message to a set of Expo push tokens.

        Returns:
            dict with keys: status (sent|dry_run|failed|skipped), error
        """
        if not tokens:
            return {"status": "skipped", "error": None}

        if len(body) > MAX_BODY_LENGTH:
            body = body[: MAX_BODY_LENGTH - 3] + "..."

        if self.dry_run:
            logger.info(f"[DRY RUN] Push to {len(tokens)} device(s): {title} - {body[:80]}")
            return {"status": "dry_run", "error": None}

        messages = [{"to": t, "title": title, "body": body, "data": data or {}, "sound": "default"} for t in tokens]
        try:
            response = self.http.post(self.url, json=messages, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            tickets = response.json().get("data", [])
            errors = [t.get("message") for t in tickets if isinstance(t, dict) and t.get("status") == "error"]
            if errors:
                logger.warning(f"Expo rejected {len(errors)} of {len(tokens)} push message(s): {errors[0]}")
                if len(errors) == len(tokens):
                    return {"status": "failed", "error": errors[0]}
            return {"status": "sent", "error": None}
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to send push notification: {e}")
            return {"status": "failed", "error": str(e)}

    def dispatch(
        self,
        session: Session,
        user_id: int,
        type: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Persist a notification for ``user_id`` and push it to their devices. Never raises."""
        try:
            notification = Notification(user_id=user_id, type=type, title=title, body=body, data=data or {})
            tokens = session.exec(select(UserDevice.push_token).where(UserDevice.user_id == user_id)).all()
            result = self.send_push(list(tokens), title, body, data)
            notification.push_status = result["status"]
            notification.error_message = result["error"]
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return notification
        except Exception:
            logger.exception(f"Failed to record {type} notification for user {user_id}")
            session.rollback()
            return None

    def dispatch_all(self, session: Session, pending: Iterable[PendingNotification]) -> int:
        """Dispatch queued notifications; returns how many were recorded."""
        recorded = 0
        for n in pending:
            if self.dispatch(session, n.user_id, n.type, n.title, n.body, n.data) is not None:
                recorded += 1
        return recorded


_service: Optional[PushNotificationService] = None


def get_push_service() -> PushNotificationService:
    global _service
    if _service is None:
        _service = PushNotificationService()
    return _service


def set_push_service(service: Optional[PushNotificationService]) -> None:
    """Swap the process-wide service (tests inject a fake transport)."""
    global _service
    _service = service
