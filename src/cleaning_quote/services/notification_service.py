"""
Notification Service - best-effort outbound tasks after a confirm.

Each task (issue ticket, email) runs on its own with a bounded retry on
transport failures and produces a NotificationReport. A missing
credential makes the task "skipped", never an error, and no task
outcome changes the result of the confirm itself.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

import requests
from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import Settings, get_settings
from ..errors import ConfigurationError, QuoteError, TransportError
from ..sharing.serializer import markdown_to_html, quote_to_markdown


logger = logging.getLogger(__name__)

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class NotificationReport:
    """Outcome of one outbound task."""
    task: str
    status: str
    detail: str = ""
    url: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _post(session: requests.Session, url: str, timeout: float, **kwargs) -> requests.Response:
    """POST that maps network errors and 5xx to TransportError and 4xx to QuoteError."""
    try:
        response = session.post(url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        raise TransportError(f"{url}: {e}") from e
    if response.status_code >= 500:
        raise TransportError(f"{url} returned {response.status_code}", status_code=response.status_code)
    if not response.ok:
        raise QuoteError(f"{url} rejected request ({response.status_code}): {response.text[:300]}")
    return response


class GitHubIssueTracker:
    """Creates one GitHub issue per confirmed quote."""

    def __init__(self, token: str, repo: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        if not token or not repo or '/' not in repo:
            raise ConfigurationError("GITHUB_TOKEN / GITHUB_REPO not configured")
        self.token = token
        self.repo = repo
        self.timeout = timeout
        self.session = session or requests.Session()

    def create_issue(self, title: str, body: str, labels: Optional[list[str]] = None) -> str:
        owner, name = self.repo.split('/', 1)
        response = _post(
            self.session,
            f"https://api.github.com/repos/{owner}/{name}/issues",
            self.timeout,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            json={"title": title, "body": body, "labels": labels or []},
        )
        return response.json().get('html_url')


class ResendMailer:
    """Transactional email through Resend."""

    def __init__(self, api_key: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, sender: str, to: str, subject: str, html: str):
        _post(
            self.session,
            "https://api.resend.com/emails",
            self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"from": sender, "to": [to], "subject": subject, "html": html},
        )


class BrevoMailer:
    """Transactional email through Brevo."""

    def __init__(self, api_key: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, sender: str, to: str, subject: str, html: str):
        _post(
            self.session,
            "https://api.brevo.com/v3/smtp/email",
            self.timeout,
            headers={"api-key": self.api_key},
            json={"sender": {"email": sender}, "to": [{"email": to}], "subject": subject, "htmlContent": html},
        )


def _attempts(retrying: Retrying) -> int:
    return retrying.statistics.get('attempt_number', 1)


def issue_title(payload: dict) -> str:
    return f"[同意報價] {payload.get('customer') or '未填姓名'}｜合計 {payload.get('total') or 0} 元"


def email_subject(payload: dict) -> str:
    return f"客戶同意報價｜{payload.get('customer') or '未填'}｜合計 {payload.get('total') or 0} 元"


class NotificationService:
    """Runs the outbound tasks for a confirmed quote."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()

    def _mailers(self) -> list:
        mailers = []
        if self.settings.resend_api_key:
            mailers.append(ResendMailer(self.settings.resend_api_key, self.settings.http_timeout, self.session))
        if self.settings.brevo_api_key:
            mailers.append(BrevoMailer(self.settings.brevo_api_key, self.settings.http_timeout, self.session))
        return mailers

    def run_task(self, task: str, fn: Callable[[], Optional[str]]) -> NotificationReport:
        """
        Run one task with retries on TransportError.

        fn returns an optional URL (e.g. the created issue) on success.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(max(1, self.settings.notify_max_attempts)),
            wait=wait_exponential(multiplier=self.settings.notify_retry_wait, max=10),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            url = retrying(fn)
        except ConfigurationError as e:
            logger.info("Notification %s skipped: %s", task, e)
            return NotificationReport(task=task, status=SKIPPED, detail=str(e), attempts=_attempts(retrying))
        except TransportError as e:
            attempts = _attempts(retrying)
            logger.error("Notification %s failed after %d attempts: %s", task, attempts, e)
            return NotificationReport(task=task, status=FAILED, detail=str(e), attempts=attempts)
        except QuoteError as e:
            logger.error("Notification %s rejected: %s", task, e)
            return NotificationReport(task=task, status=FAILED, detail=str(e), attempts=_attempts(retrying))
        return NotificationReport(task=task, status=SENT, url=url, attempts=_attempts(retrying))

    def create_issue(self, payload: dict) -> NotificationReport:
        def task():
            tracker = GitHubIssueTracker(
                self.settings.github_token,
                self.settings.github_repo,
                self.settings.http_timeout,
                self.session,
            )
            return tracker.create_issue(issue_title(payload), quote_to_markdown(payload), labels=["quote", "confirmed"])

        return self.run_task("issue", task)

    def send_email(self, payload: dict, issue_url: Optional[str] = None) -> NotificationReport:
        def task():
            if not (self.settings.from_email and self.settings.to_email):
                raise ConfigurationError("FROM_EMAIL / TO_EMAIL not configured")
            mailers = self._mailers()
            if not mailers:
                raise ConfigurationError("RESEND_API_KEY / BREVO_API_KEY not configured")

            html = markdown_to_html(quote_to_markdown(payload), issue_url, self.settings.site_base_url)
            subject = email_subject(payload)
            last_error = None
            for mailer in mailers:
                try:
                    mailer.send(self.settings.from_email, self.settings.to_email, subject, html)
                    return None
                except QuoteError as e:
                    logger.warning("%s failed: %s", type(mailer).__name__, e)
                    last_error = e
            raise last_error

        return self.run_task("email", task)

    def dispatch(self, payload: dict) -> list[NotificationReport]:
        """Issue first (its URL goes into the email), then email."""
        issue = self.create_issue(payload)
        email = self.send_email(payload, issue_url=issue.url)
        return [issue, email]
