"""Push delivery: dry run, Expo transport, failures recorded instead of raised."""
import requests
from sqlmodel import Session

from hockey import settings
from hockey.models.notification import UserDevice
from hockey.services.notification_service import MAX_BODY_LENGTH, PendingNotification, PushNotificationService


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeHttp:
    """Stands in for requests.Session; records every POST."""

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse({"data": [{"status": "ok"}]})
        self.error = error
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers})
        if self.error:
            raise self.error
        return self.response


def _with_device(session, user_id=7, token="ExponentPushToken[abc]"):
    session.add(UserDevice(user_id=user_id, push_token=token))
    session.commit()


def test_push_sent_to_registered_devices(session: Session, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    monkeypatch.setattr(settings, "EXPO_ACCESS_TOKEN", "secret")
    _with_device(session)
    http = FakeHttp()
    service = PushNotificationService(http=http)

    notification = service.dispatch(session, 7, "game_reminder", "Game soon", "Puck drops at 9", {"event_id": 1})

    assert notification.push_status == "sent"
    assert notification.data == {"event_id": 1}
    [post] = http.posts
    assert post["url"] == settings.EXPO_PUSH_URL
    assert post["json"][0]["to"] == "ExponentPushToken[abc]"
    assert post["headers"]["Authorization"] == "Bearer secret"


def test_user_without_devices_is_recorded_but_not_pushed(session: Session, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    http = FakeHttp()

    notification = PushNotificationService(http=http).dispatch(session, 8, "auto_promoted", "In", "You're in")

    assert notification.push_status == "skipped"
    assert http.posts == []


def test_dry_run_never_touches_the_network(session: Session):
    _with_device(session)
    http = FakeHttp()
    service = PushNotificationService(http=http)

    assert service.dry_run is True
    assert service.dispatch(session, 7, "auto_promoted", "In", "You're in").push_status == "dry_run"
    assert http.posts == []


def test_transport_failure_is_recorded_not_raised(session: Session, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    _with_device(session)
    service = PushNotificationService(http=FakeHttp(error=requests.ConnectionError("no route to host")))

    notification = service.dispatch(session, 7, "match_completed", "Result", "3-1")

    assert notification.push_status == "failed"
    assert "no route to host" in notification.error_message


def test_expo_ticket_errors_mark_delivery_failed(session: Session, monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    _with_device(session)
    rejected = FakeResponse({"data": [{"status": "error", "message": "DeviceNotRegistered"}]})
    service = PushNotificationService(http=FakeHttp(response=rejected))

    notification = service.dispatch(session, 7, "match_completed", "Result", "3-1")

    assert notification.push_status == "failed"
    assert notification.error_message == "DeviceNotRegistered"


def test_long_bodies_are_truncated(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    http = FakeHttp()

    PushNotificationService(http=http).send_push(["tok"], "Title", "x" * 5000)

    body = http.posts[0]["json"][0]["body"]
    assert len(body) == MAX_BODY_LENGTH
    assert body.endswith("...")


def test_dispatch_all_counts_recorded(session: Session):
    pending = [
        PendingNotification(1, "auto_promoted", "In", "You're in"),
        PendingNotification(2, "auto_promotion", "Promotion", "User 1 promoted", {"event_id": 3}),
    ]

    assert PushNotificationService(http=FakeHttp()).dispatch_all(session, pending) == 2
