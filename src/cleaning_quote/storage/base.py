"""
Object store interface consumed by the resolver and the lifecycle protocol.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ResourceCategory(str, Enum):
    """Resource kinds, in resolution priority order."""
    RAW = "raw"
    IMAGE = "image"
    VIDEO = "video"


class AccessMode(str, Enum):
    """Delivery kinds, in resolution priority order."""
    UPLOAD = "upload"
    AUTHENTICATED = "authenticated"
    PRIVATE = "private"


@dataclass
class StorageRecord:
    """A persisted record as the store describes it."""
    key: str
    category: ResourceCategory = ResourceCategory.RAW
    mode: AccessMode = AccessMode.UPLOAD
    context: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    url: Optional[str] = None

    @property
    def basename(self) -> str:
        return self.key.rsplit('/', 1)[-1]

    @property
    def locked(self) -> bool:
        return str(self.context.get('locked', '')).strip().lower() in ('1', 'true', 'yes')


@dataclass
class CreatedResource:
    """Result of a successful create()."""
    key: str
    url: Optional[str] = None


class ObjectStore(ABC):
    """
    Abstract blob store with per-record context metadata.

    Implementations return None from get_metadata on a plain miss and
    raise TransportError on network/5xx failures, so callers can tell
    "not there" from "could not ask".
    """

    @abstractmethod
    def create(self, suggested_key: str, payload: dict) -> CreatedResource:
        """Persist a JSON payload under (about) the suggested key."""

    @abstractmethod
    def get_metadata(self, category: ResourceCategory, mode: AccessMode, key: str) -> Optional[StorageRecord]:
        """Direct metadata lookup of one (category, mode, key)."""

    @abstractmethod
    def update_context(
        self,
        category: ResourceCategory,
        key: str,
        context: dict[str, str],
        mode: AccessMode = AccessMode.UPLOAD,
    ) -> StorageRecord:
        """Replace a record's context metadata. Raises MutationError when rejected."""

    @abstractmethod
    def search(self, expression: str, max_results: int = 1) -> list[StorageRecord]:
        """Search records; results are ordered, only the first is normally used."""

    @abstractmethod
    def fetch_payload(self, record: StorageRecord) -> dict:
        """Download and decode the JSON payload of a record."""
