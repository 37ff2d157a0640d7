"""
Quote Service - the operations behind the HTTP API and the UI.

    price(items)            -> priced rows + total
    create_share(payload)   -> {id, shareUrl, key, url}
    fetch_share(id)         -> {id, locked, status, cancelReason, cancelledAt, data}
    confirm(payload)        -> {ok, referenceUrl, notifications}
    lock(id)                -> {ok, id, locked, status}
    cancel(id, reason)      -> {ok, id, cancelledAt, context}
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from ..config.settings import Settings, get_settings
from ..engine.models import Quote, QuoteStatus
from ..engine.pricing_engine import PricingEngine
from ..errors import InvalidRequestError, InvalidTransitionError
from ..lifecycle.protocol import StatusProtocol, utc_now
from ..lifecycle.state_machine import LOCKED_STATUSES, status_from_record, transition
from ..sharing.links import build_share_url, new_short_id
from ..sharing.serializer import item_from_payload, parse_timestamp, quote_from_payload, quote_to_payload
from ..storage.base import ObjectStore, StorageRecord
from ..storage.cloudinary_store import CloudinaryStore
from ..storage.memory_store import InMemoryObjectStore
from ..storage.resolver import ResourceResolver
from .notification_service import NotificationService


logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> ObjectStore:
    """Object store selected by STORAGE_BACKEND. Raises ConfigurationError without credentials."""
    if settings.storage_backend == 'memory':
        return InMemoryObjectStore()
    return CloudinaryStore.from_settings(settings)


class QuoteService:
    """Pricing, persistence and lifecycle operations over one object store."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[ObjectStore] = None,
        engine: Optional[PricingEngine] = None,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_short_id,
    ):
        self.settings = settings or get_settings()
        self._store = store
        self.engine = engine or PricingEngine(self.settings)
        self.notifier = notifier or NotificationService(self.settings)
        self.clock = clock
        self.id_factory = id_factory

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = build_store(self.settings)
        return self._store

    @property
    def resolver(self) -> ResourceResolver:
        return ResourceResolver(self.store, self.settings.storage_folder)

    @property
    def protocol(self) -> StatusProtocol:
        return StatusProtocol(self.store, self.resolver, clock=self.clock)

    def canonicalize(self, payload: dict) -> Quote:
        """Parse a client payload and reprice it; manual prices survive via their override flag."""
        if not isinstance(payload, dict):
            raise InvalidRequestError("Quote payload must be a JSON object")
        quote = quote_from_payload(payload)
        self.engine.reprice(quote)
        return quote

    def price(self, items: list[dict]) -> dict:
        quote = Quote(items=[item_from_payload(it) for it in items or [] if isinstance(it, dict)])
        result = self.engine.reprice(quote)
        payload = quote_to_payload(quote)
        for row, line in zip(payload['items'], quote.items):
            row['discountNote'] = line.discount_note
            row['rule'] = line.rule_id
        return {
            'items': payload['items'],
            'total': payload['total'],
            'trace': result.get_trace_text(),
        }

    def create_share(self, payload: dict) -> dict:
        """Persist a quote and hand back its share link."""
        quote = self.canonicalize(payload)
        short_id = self.id_factory()
        folder = self.settings.storage_folder
        key = f"{folder}/{short_id}" if folder else short_id

        created = self.store.create(key, quote_to_payload(quote))
        quote.identifier = short_id
        quote.status = transition(QuoteStatus.DRAFT, QuoteStatus.SHARED)
        logger.info("Shared quote %s (%s rows, total %s)", created.key, len(quote.items), quote.total)

        base = self.settings.site_base_url
        share_url = build_share_url(base, short_id) if base else created.url
        return {'id': short_id, 'shareUrl': share_url, 'key': created.key, 'url': created.url}

    def _load(self, identifier: str) -> tuple[StorageRecord, dict]:
        if not (identifier or "").strip():
            raise InvalidRequestError("Missing id")
        record = self.resolver.resolve(identifier)
        return record, self.store.fetch_payload(record)

    def load_quote(self, identifier: str) -> Quote:
        """Persisted quote with its lifecycle status applied."""
        record, data = self._load(identifier)
        quote = quote_from_payload(data)
        quote.identifier = record.basename
        quote.status = status_from_record(record)
        if quote.status == QuoteStatus.CANCELLED:
            quote.cancel_reason = record.context.get('cancel_reason') or None
            quote.cancelled_at = parse_timestamp(record.context.get('cancel_time'))
        return quote

    def fetch_share(self, identifier: str) -> dict:
        record, data = self._load(identifier)
        status = status_from_record(record)
        return {
            'id': record.basename,
            'locked': record.locked or status == QuoteStatus.CANCELLED,
            'status': status.value,
            'cancelReason': record.context.get('cancel_reason') if status == QuoteStatus.CANCELLED else None,
            'cancelledAt': record.context.get('cancel_time') if status == QuoteStatus.CANCELLED else None,
            'data': data,
        }

    def confirm(self, payload: dict) -> dict:
        """
        Customer agreed to the quote: run the outbound notifications.

        When the payload names its persisted record, a cancelled or already
        confirmed-locked record cannot be confirmed. Notification failures are reported, not raised.
        """
        if not isinstance(payload, dict):
            raise InvalidRequestError("Quote payload must be a JSON object")
        payload = dict(payload)
        identifier = payload.pop('cloudinaryId', None)

        if identifier:
            record = self.resolver.resolve(identifier)
            status = status_from_record(record)
            if status in LOCKED_STATUSES:
                raise InvalidTransitionError(status, QuoteStatus.CONFIRMED_LOCKED)

        reports = self.notifier.dispatch(payload)
        issue_url = next((r.url for r in reports if r.task == 'issue' and r.url), None)
        return {'ok': True, 'referenceUrl': issue_url, 'notifications': [r.to_dict() for r in reports]}

    def lock(self, identifier: str) -> dict:
        if not (identifier or "").strip():
            raise InvalidRequestError("Missing id")
        result = self.protocol.lock(identifier)
        return {'ok': True, 'id': result.identifier, 'locked': True, 'status': result.status.value}

    def cancel(self, identifier: str, reason: Optional[str] = "") -> dict:
        if not (identifier or "").strip():
            raise InvalidRequestError("Missing id")
        result = self.protocol.cancel(identifier, reason)
        return {
            'ok': True,
            'id': result.identifier,
            'cancelledAt': result.cancelled_at,
            'context': dict(result.record.context),
        }
