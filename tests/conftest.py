import pytest
import sys
import os
from datetime import datetime, timezone

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from cleaning_quote.config.settings import Settings
from cleaning_quote.engine import PricingEngine
from cleaning_quote.services.notification_service import NotificationReport, SENT
from cleaning_quote.services.quote_service import QuoteService
from cleaning_quote.storage import InMemoryObjectStore


class FixedClock:
    """Deterministic clock; advance() moves it forward by whole seconds."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 9, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: int):
        from datetime import timedelta
        self.now = self.now + timedelta(seconds=seconds)


class RecordingNotifier:
    """Notifier double that records payloads and reports success."""

    def __init__(self):
        self.payloads = []

    def dispatch(self, payload):
        self.payloads.append(payload)
        return [
            NotificationReport(task="issue", status=SENT, url="https://github.com/acme/quotes/issues/7", attempts=1),
            NotificationReport(task="email", status=SENT, attempts=1),
        ]


@pytest.fixture
def settings():
    return Settings(storage_backend="memory", site_base_url="https://quotes.example.com/")


@pytest.fixture
def engine(settings):
    return PricingEngine(settings)


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(settings, store, engine, notifier, clock):
    ids = iter(f"qtest{n:04d}" for n in range(1, 1000))
    return QuoteService(
        settings=settings,
        store=store,
        engine=engine,
        notifier=notifier,
        clock=clock,
        id_factory=lambda: next(ids),
    )
