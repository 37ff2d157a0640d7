"""
Outbound notifications after a confirm, with a mocked HTTP session.
"""
import logging
from unittest.mock import MagicMock

import pytest
import requests

from cleaning_quote.config.settings import Settings
from cleaning_quote.services.notification_service import (
    FAILED,
    SENT,
    SKIPPED,
    NotificationService,
    email_subject,
    issue_title,
)


PAYLOAD = {'customer': '王小明', 'total': 6300, 'items': [{'service': '冷氣清洗', 'qty': 3, 'price': 1500, 'subtotal': 4500}]}


def response(status=200, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.json.return_value = body or {}
    resp.text = text
    return resp


def full_settings(**overrides):
    values = dict(
        github_token="ghp_x", github_repo="acme/quotes",
        resend_api_key="re_x", brevo_api_key="", from_email="quotes@example.com", to_email="ops@example.com",
        notify_max_attempts=2, notify_retry_wait=0,
    )
    values.update(overrides)
    return Settings(**values)


def test_titles():
    assert issue_title(PAYLOAD) == "[同意報價] 王小明｜合計 6300 元"
    assert email_subject(PAYLOAD) == "客戶同意報價｜王小明｜合計 6300 元"
    assert issue_title({}) == "[同意報價] 未填姓名｜合計 0 元"


def test_dispatch_sends_issue_then_email():
    session = MagicMock()
    session.post.side_effect = [
        response(201, {'html_url': 'https://github.com/acme/quotes/issues/9'}),
        response(200, {'id': 'mail-1'}),
    ]
    reports = NotificationService(full_settings(), session).dispatch(PAYLOAD)

    assert [(r.task, r.status) for r in reports] == [("issue", SENT), ("email", SENT)]
    assert reports[0].url.endswith("/issues/9")

    issue_call, email_call = session.post.call_args_list
    assert issue_call.args[0] == "https://api.github.com/repos/acme/quotes/issues"
    assert issue_call.kwargs['json']['labels'] == ["quote", "confirmed"]
    assert email_call.args[0] == "https://api.resend.com/emails"
    assert "issues/9" in email_call.kwargs['json']['html']


def test_missing_credentials_are_skipped():
    session = MagicMock()
    reports = NotificationService(Settings(), session).dispatch(PAYLOAD)
    assert [r.status for r in reports] == [SKIPPED, SKIPPED]
    session.post.assert_not_called()


def test_transport_errors_are_retried():
    session = MagicMock()
    session.post.side_effect = [
        requests.ConnectionError("reset"),
        response(201, {'html_url': 'https://github.com/acme/quotes/issues/10'}),
    ]
    service = NotificationService(full_settings(resend_api_key=""), session)
    report = service.create_issue(PAYLOAD)
    assert report.status == SENT
    assert report.attempts == 2


def test_retry_is_logged_before_next_attempt(caplog):
    session = MagicMock()
    session.post.side_effect = [
        response(502, text="bad gateway"),
        response(201, {'html_url': 'https://github.com/acme/quotes/issues/11'}),
    ]
    with caplog.at_level(logging.WARNING, logger="cleaning_quote.services.notification_service"):
        report = NotificationService(full_settings(), session).create_issue(PAYLOAD)
    assert report.status == SENT
    assert any(r.levelno == logging.WARNING and "Retrying" in r.getMessage() for r in caplog.records)


def test_retries_are_bounded():
    session = MagicMock()
    session.post.return_value = response(503, text="unavailable")
    report = NotificationService(full_settings(notify_max_attempts=3), session).create_issue(PAYLOAD)
    assert report.status == FAILED
    assert report.attempts == 3
    assert session.post.call_count == 3


def test_client_errors_are_not_retried():
    session = MagicMock()
    session.post.return_value = response(422, text="Validation Failed")
    report = NotificationService(full_settings(), session).create_issue(PAYLOAD)
    assert report.status == FAILED
    assert report.attempts == 1
    assert "Validation Failed" in report.detail


def test_email_falls_back_to_brevo():
    session = MagicMock()
    session.post.side_effect = [
        response(403, text="domain not verified"),
        response(201, {'messageId': 'x'}),
    ]
    service = NotificationService(full_settings(brevo_api_key="xkeysib"), session)
    report = service.send_email(PAYLOAD)
    assert report.status == SENT
    assert session.post.call_args_list[1].args[0] == "https://api.brevo.com/v3/smtp/email"


def test_failed_issue_does_not_block_email():
    session = MagicMock()
    session.post.side_effect = [
        response(401, text="Bad credentials"),
        response(200, {'id': 'mail-1'}),
    ]
    reports = NotificationService(full_settings(), session).dispatch(PAYLOAD)
    assert [r.status for r in reports] == [FAILED, SENT]


@pytest.mark.parametrize("repo", ["", "no-slash"])
def test_bad_repo_is_skipped(repo):
    session = MagicMock()
    report = NotificationService(full_settings(github_repo=repo), session).create_issue(PAYLOAD)
    assert report.status == SKIPPED
