"""Tests for transfer notifications (email + real-time)."""
import asyncio
from concurrent.futures import ThreadPoolExecutor

import httpx

from orgtree.core.config import settings
from orgtree.core.websocket import ConnectionManager
from orgtree.db.enums import TransferStatus
from orgtree.services import (
    email_service,
    http_service,
    notification_service,
    transfer_events,
    transfer_service,
)

REASON = "New chapter for the organization"


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return {"success": True}


def test_initiate_emails_recipient(db, org_setup, monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(email_service, "send_transfer_initiated_email", recorder)

    transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.admin.id, REASON
    )

    assert recorder.calls == [
        {
            "to": org_setup.admin.email,
            "recipient_name": "Adam Admin",
            "initiator_name": "Olivia Owner",
            "org_name": "Test Organization",
        }
    ]


def test_accept_emails_previous_owner(db, org_setup, monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(email_service, "send_transfer_accepted_email", recorder)
    transfer = transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.admin.id, REASON
    )

    transfer_service.accept_transfer(db, transfer.id, org_setup.admin.id)

    assert len(recorder.calls) == 1
    assert recorder.calls[0]["to"] == org_setup.owner.email
    assert recorder.calls[0]["new_owner_name"] == "Adam Admin"


def test_reject_and_cancel_emails(db, org_setup, monkeypatch):
    rejected = Recorder()
    cancelled = Recorder()
    monkeypatch.setattr(email_service, "send_transfer_rejected_email", rejected)
    monkeypatch.setattr(email_service, "send_transfer_cancelled_email", cancelled)

    first = transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.admin.id, REASON
    )
    transfer_service.reject_transfer(db, first.id, org_setup.admin.id, reason="Too busy")
    second = transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.editor.id, REASON
    )
    transfer_service.cancel_transfer(db, second.id, org_setup.owner.id, "Reorganizing first")

    assert rejected.calls[0]["to"] == org_setup.owner.email
    assert rejected.calls[0]["reason"] == "Too busy"
    assert cancelled.calls[0]["to"] == org_setup.editor.email
    assert cancelled.calls[0]["cancelled_by_name"] == "Olivia Owner"
    assert cancelled.calls[0]["reason"] == "Reorganizing first"


def test_notification_failure_does_not_affect_transition(db, org_setup, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(email_service, "send_transfer_accepted_email", broken)
    transfer = transfer_service.initiate_transfer(
        db, org_setup.org.id, org_setup.owner.id, org_setup.admin.id, REASON
    )

    result = transfer_service.accept_transfer(db, transfer.id, org_setup.admin.id)
    assert result.status == TransferStatus.ACCEPTED.value


def test_dispatch_uses_executor(monkeypatch):
    seen = []
    executor = ThreadPoolExecutor(max_workers=1)
    notification_service.configure_dispatch(executor)
    try:
        notification_service.dispatch("job", seen.append, "payload")
    finally:
        executor.shutdown(wait=True)
        notification_service.configure_dispatch(None)

    assert seen == ["payload"]


def test_dispatch_after_executor_shutdown_runs_inline():
    seen = []
    executor = ThreadPoolExecutor(max_workers=1)
    executor.shutdown(wait=True)
    notification_service.configure_dispatch(executor)
    try:
        notification_service.dispatch("job", seen.append, "late")
    finally:
        notification_service.configure_dispatch(None)

    assert seen == ["late"]


def test_email_skipped_when_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")

    def fail(*args, **kwargs):
        raise AssertionError("no HTTP call expected")

    monkeypatch.setattr(httpx, "post", fail)

    result = email_service.send_transfer_initiated_email(
        to="new@test.com", recipient_name="New", initiator_name="Old", org_name="Acme"
    )
    assert result == {"success": False, "error": "email_not_configured"}


def test_email_escapes_html(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    captured = {}

    def fake_post(url, json, headers, timeout):
        captured.update(json)
        return httpx.Response(200, json={"id": "msg_1"}, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", fake_post)

    result = email_service.send_transfer_rejected_email(
        to="owner@test.com",
        recipient_name="Owner",
        rejected_by_name="<script>",
        org_name="Acme & Co",
        reason="nope",
    )

    assert result == {"success": True, "message_id": "msg_1"}
    assert "&lt;script&gt;" in captured["html"]
    assert "<script>" not in captured["html"]
    assert captured["subject"] == "Ownership Transfer Rejected: Acme & Co"


def test_email_http_error_is_reported(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    sleeps = []
    monkeypatch.setattr(http_service.time, "sleep", sleeps.append)
    attempts = []

    def fake_post(url, **kwargs):
        attempts.append(url)
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "post", fake_post)

    result = email_service.send_transfer_accepted_email(
        to="owner@test.com", recipient_name="Owner", new_owner_name="New", org_name="Acme"
    )
    assert result["success"] is False
    assert len(attempts) == email_service.RESEND_MAX_ATTEMPTS
    assert len(sleeps) == email_service.RESEND_MAX_ATTEMPTS - 1


def test_email_retries_transient_status(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    sleeps = []
    monkeypatch.setattr(http_service.time, "sleep", sleeps.append)
    statuses = [503, 200]

    def fake_post(url, **kwargs):
        status = statuses.pop(0)
        body = {"id": "msg_2"} if status == 200 else {"message": "unavailable"}
        return httpx.Response(status, json=body, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "post", fake_post)

    result = email_service.send_transfer_cancelled_email(
        to="new@test.com", recipient_name="New", cancelled_by_name="Old", org_name="Acme"
    )

    assert result == {"success": True, "message_id": "msg_2"}
    assert statuses == []
    assert len(sleeps) == 1
    assert 0.5 <= sleeps[0] <= 0.75


def test_retry_gives_up_on_persistent_status(monkeypatch):
    monkeypatch.setattr(http_service.time, "sleep", lambda delay: None)
    calls = []

    def request():
        calls.append(1)
        return httpx.Response(502, request=httpx.Request("POST", "https://api.test"))

    response = http_service.request_with_retries(request, max_attempts=2)

    assert response.status_code == 502
    assert len(calls) == 2


def test_retry_does_not_repeat_client_errors(monkeypatch):
    calls = []

    def request():
        calls.append(1)
        return httpx.Response(422, request=httpx.Request("POST", "https://api.test"))

    assert http_service.request_with_retries(request).status_code == 422
    assert len(calls) == 1


def test_event_without_loop_is_dropped():
    assert transfer_events.emit_transfer_event(
        "org", "user", "initiated", {"transfer_id": "t"}, None
    ) is False


class FakeSocket:
    def __init__(self):
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, data):
        self.sent.append(data)


async def test_event_delivered_to_target_and_org(monkeypatch):
    local_manager = ConnectionManager()
    monkeypatch.setattr(transfer_events, "manager", local_manager)
    local_manager.bind_loop(asyncio.get_running_loop())

    target, member = FakeSocket(), FakeSocket()
    await local_manager.connect(target, "new-owner", {"org-1"})
    await local_manager.connect(member, "member", {"org-1"})

    # Published from a worker thread, as the services do
    delivered = await asyncio.to_thread(
        transfer_events.emit_transfer_event,
        "org-1",
        "new-owner",
        "accepted",
        {"new_owner_id": "new-owner"},
        {"id": "new-owner", "name": "New"},
    )
    assert delivered is True

    for _ in range(20):
        if len(member.sent) == 2:
            break
        await asyncio.sleep(0.01)

    assert len(target.sent) == 2
    assert '"ownership_transfer:accepted"' in target.sent[0]
    assert '"org:updated"' in target.sent[1]
    assert '"ownership_transfer:accepted"' in member.sent[0]
    assert '"org:updated"' in member.sent[1]
