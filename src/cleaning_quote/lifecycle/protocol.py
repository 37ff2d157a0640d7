"""
Lock/Cancel protocol and the confirm flow.

Both mutations are written so that applying them more than once converges
to the same state: there is no distributed lock, and a disabled button on
the client is only a hint.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, MutableMapping, Optional

from ..engine.models import Quote, QuoteStatus
from ..errors import QuoteError
from ..sharing.links import ShareLink
from ..sharing.serializer import quote_to_payload
from ..storage.base import ObjectStore, StorageRecord
from ..storage.resolver import ResourceResolver
from .state_machine import status_from_record, transition


logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class MutationResult:
    """Outcome of a lock or cancel write."""
    identifier: str
    record: StorageRecord
    status: QuoteStatus
    written: bool = True
    cancelled_at: Optional[str] = None


class StatusProtocol:
    """Applies lock and cancel to a persisted record's context metadata."""

    def __init__(
        self,
        store: ObjectStore,
        resolver: ResourceResolver,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.resolver = resolver
        self.clock = clock

    def lock(self, identifier: str) -> MutationResult:
        """
        Set locked=1, keeping every other context key.

        A record that is already locked (confirmed or cancelled) is left
        untouched, so retries and duplicate submissions are no-ops.
        """
        record = self.resolver.resolve(identifier)
        current = status_from_record(record)

        if record.locked:
            return MutationResult(identifier=record.key, record=record, status=current, written=False)

        context = {**record.context, 'locked': '1'}
        updated = self.store.update_context(record.category, record.key, context, mode=record.mode)
        logger.info("Locked quote %s", record.key)
        return MutationResult(identifier=record.key, record=updated, status=status_from_record(updated))

    def cancel(self, identifier: str, reason: Optional[str] = "") -> MutationResult:
        """
        Mark a record cancelled (and locked) in one context write.

        Cancelling again overwrites reason and time; the status stays
        cancelled.
        """
        record = self.resolver.resolve(identifier)
        current = status_from_record(record)
        if current != QuoteStatus.CANCELLED:
            transition(current, QuoteStatus.CANCELLED)

        cancelled_at = format_timestamp(self.clock())
        context = {
            **record.context,
            'locked': '1',
            'status': QuoteStatus.CANCELLED.value,
            'cancel_reason': str(reason or "")[:MAX_REASON_LENGTH],
            'cancel_time': cancelled_at,
        }
        updated = self.store.update_context(record.category, record.key, context, mode=record.mode)
        logger.info("Cancelled quote %s", record.key)
        return MutationResult(
            identifier=record.key,
            record=updated,
            status=QuoteStatus.CANCELLED,
            cancelled_at=cancelled_at,
        )


class ConfirmedMarkers:
    """
    Local "already confirmed" markers keyed by share link.

    Backed by any mutable mapping (a dict, Streamlit session state) so a
    reload shortly after confirming does not offer the confirm action again.
    """

    def __init__(self, storage: Optional[MutableMapping[str, Any]] = None):
        self.storage = storage if storage is not None else {}

    @staticmethod
    def key_for(link: ShareLink) -> Optional[str]:
        if link.cid:
            return f"locked:cid:{link.cid}"
        if link.fragment:
            return f"locked:data:#{link.fragment}"
        return None

    def mark(self, link: ShareLink):
        key = self.key_for(link)
        if key:
            self.storage[key] = "1"

    def is_confirmed(self, link: ShareLink) -> bool:
        key = self.key_for(link)
        return bool(key) and self.storage.get(key) == "1"


@dataclass
class ConfirmOutcome:
    """What happened during a confirm."""
    ok: bool
    reference_url: Optional[str] = None
    locked: bool = False
    lock_error: Optional[str] = None
    notifications: list[dict] = field(default_factory=list)


class ConfirmFlow:
    """
    Customer confirm: submit the quote, then lock the record, then mark locally.

    `backend` is anything with confirm(payload) -> dict and lock(id) -> dict
    (QuoteService in-process, or an HTTP client). A confirm failure
    propagates and changes nothing. A lock failure after a successful
    confirm is logged and reported in the outcome; the confirmation
    itself stands.
    """

    def __init__(self, backend, markers: Optional[ConfirmedMarkers] = None):
        self.backend = backend
        self.markers = markers or ConfirmedMarkers()

    def run(self, quote: Quote, link: ShareLink) -> ConfirmOutcome:
        payload = quote_to_payload(quote)
        if link.cid:
            payload['cloudinaryId'] = link.cid

        response = self.backend.confirm(payload)
        outcome = ConfirmOutcome(
            ok=True,
            reference_url=response.get('referenceUrl'),
            notifications=response.get('notifications', []),
        )

        if link.cid:
            try:
                self.backend.lock(link.cid)
                outcome.locked = True
            except QuoteError as e:
                logger.error("Quote %s confirmed but lock failed: %s", link.cid, e)
                outcome.lock_error = str(e)

        self.markers.mark(link)
        return outcome
