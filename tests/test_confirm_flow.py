"""
Customer confirm: submit, lock, mark locally.
"""
import pytest

from cleaning_quote.engine.models import Quote
from cleaning_quote.errors import MutationError, TransportError
from cleaning_quote.lifecycle import ConfirmedMarkers, ConfirmFlow
from cleaning_quote.sharing.links import parse_share_link


class StubBackend:
    def __init__(self, confirm_error=None, lock_error=None):
        self.confirm_error = confirm_error
        self.lock_error = lock_error
        self.confirmed = []
        self.locked = []

    def confirm(self, payload):
        if self.confirm_error:
            raise self.confirm_error
        self.confirmed.append(payload)
        return {'ok': True, 'referenceUrl': 'https://github.com/acme/quotes/issues/3', 'notifications': []}

    def lock(self, identifier):
        if self.lock_error:
            raise self.lock_error
        self.locked.append(identifier)
        return {'ok': True}


@pytest.fixture
def quote():
    q = Quote(customer="王小明")
    q.add_item("冷氣清洗", "分離式（壁掛式）", 1, 1800)
    return q


def test_confirm_locks_and_marks(quote):
    backend = StubBackend()
    markers = ConfirmedMarkers()
    link = parse_share_link("https://x/#cid=qabc")

    outcome = ConfirmFlow(backend, markers).run(quote, link)

    assert outcome.ok and outcome.locked
    assert outcome.reference_url.endswith("/issues/3")
    assert backend.confirmed[0]['cloudinaryId'] == "qabc"
    assert backend.confirmed[0]['customer'] == "王小明"
    assert backend.locked == ["qabc"]
    assert markers.is_confirmed(link)
    assert markers.storage == {"locked:cid:qabc": "1"}


def test_lock_failure_is_reported_not_rolled_back(quote, caplog):
    backend = StubBackend(lock_error=MutationError("Failed to update context", detail="boom"))
    markers = ConfirmedMarkers()
    link = parse_share_link("https://x/#cid=qabc")

    outcome = ConfirmFlow(backend, markers).run(quote, link)

    assert outcome.ok
    assert not outcome.locked
    assert "Failed to update context" in outcome.lock_error
    assert len(backend.confirmed) == 1
    assert markers.is_confirmed(link)
    assert any("lock failed" in r.getMessage() for r in caplog.records)


def test_confirm_failure_changes_nothing(quote):
    backend = StubBackend(confirm_error=TransportError("timeout"))
    markers = ConfirmedMarkers()
    link = parse_share_link("https://x/#cid=qabc")

    with pytest.raises(TransportError):
        ConfirmFlow(backend, markers).run(quote, link)

    assert backend.locked == []
    assert not markers.is_confirmed(link)


def test_legacy_data_link_marks_without_lock(quote):
    backend = StubBackend()
    markers = ConfirmedMarkers()
    link = parse_share_link("https://x/#data=%7B%7D")

    outcome = ConfirmFlow(backend, markers).run(quote, link)

    assert not outcome.locked
    assert backend.locked == []
    assert 'cloudinaryId' not in backend.confirmed[0]
    assert markers.is_confirmed(link)
    assert list(markers.storage) == ["locked:data:#data=%7B%7D"]


def test_markers_share_backing_mapping():
    session = {}
    link = parse_share_link("#cid=qabc")
    ConfirmedMarkers(session).mark(link)
    assert ConfirmedMarkers(session).is_confirmed(link)
    assert not ConfirmedMarkers(session).is_confirmed(parse_share_link("#cid=qother"))
