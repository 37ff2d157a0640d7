"""
In-memory object store.

Used for local development (STORAGE_BACKEND=memory) and as the test
double for the resolver and lifecycle protocol. Every lookup is
recorded in `calls` so tests can assert on resolution order and bounds.
"""
import copy
import re
import threading
from typing import Optional

from ..errors import MutationError, ResourceNotFoundError
from .base import AccessMode, CreatedResource, ObjectStore, ResourceCategory, StorageRecord


_EXPRESSION = re.compile(r'^(public_id|filename)="((?:[^"\\]|\\.)*)"$')


class InMemoryObjectStore(ObjectStore):
    """Dict-backed store keyed by (category, mode, key)."""

    def __init__(self, base_url: str = "memory://"):
        self.base_url = base_url
        self._records: dict[tuple[ResourceCategory, AccessMode, str], StorageRecord] = {}
        self._payloads: dict[tuple[ResourceCategory, AccessMode, str], dict] = {}
        self._lock = threading.Lock()
        self.calls: list[tuple] = []
        self.reject_updates: Optional[str] = None

    def put(
        self,
        key: str,
        payload: dict,
        category: ResourceCategory = ResourceCategory.RAW,
        mode: AccessMode = AccessMode.UPLOAD,
        context: Optional[dict] = None,
        tags: Optional[list[str]] = None,
    ) -> StorageRecord:
        """Seed a record directly (legacy layouts, fixtures)."""
        record = StorageRecord(
            key=key,
            category=category,
            mode=mode,
            context=dict(context or {}),
            tags=list(tags or []),
            url=f"{self.base_url}{category.value}/{mode.value}/{key}.json",
        )
        with self._lock:
            self._records[(category, mode, key)] = record
            self._payloads[(category, mode, key)] = copy.deepcopy(payload)
        return copy.deepcopy(record)

    def create(self, suggested_key: str, payload: dict) -> CreatedResource:
        record = self.put(suggested_key, payload)
        return CreatedResource(key=record.key, url=record.url)

    def get_metadata(self, category: ResourceCategory, mode: AccessMode, key: str) -> Optional[StorageRecord]:
        self.calls.append(('get_metadata', category, mode, key))
        with self._lock:
            record = self._records.get((category, mode, key))
            return copy.deepcopy(record) if record else None

    def update_context(
        self,
        category: ResourceCategory,
        key: str,
        context: dict[str, str],
        mode: AccessMode = AccessMode.UPLOAD,
    ) -> StorageRecord:
        self.calls.append(('update_context', category, mode, key))
        if self.reject_updates is not None:
            raise MutationError("Failed to update context", detail=self.reject_updates)
        with self._lock:
            record = self._records.get((category, mode, key))
            if record is None:
                raise MutationError("Failed to update context", detail=f'{{"error":{{"message":"Resource not found - {key}"}}}}')
            record.context = {k: str(v) for k, v in context.items()}
            return copy.deepcopy(record)

    def search(self, expression: str, max_results: int = 1) -> list[StorageRecord]:
        self.calls.append(('search', expression))
        match = _EXPRESSION.match(expression.strip())
        if not match:
            return []
        field_name, value = match.group(1), re.sub(r'\\(.)', r'\1', match.group(2))
        with self._lock:
            found = [
                copy.deepcopy(record)
                for record in self._records.values()
                if (record.key if field_name == 'public_id' else record.basename) == value
            ]
        return found[:max_results]

    def fetch_payload(self, record: StorageRecord) -> dict:
        with self._lock:
            payload = self._payloads.get((record.category, record.mode, record.key))
        if payload is None:
            raise ResourceNotFoundError(record.key)
        return copy.deepcopy(payload)

    def lookup_count(self) -> int:
        """Number of metadata lookups and searches issued so far."""
        return sum(1 for call in self.calls if call[0] in ('get_metadata', 'search'))
