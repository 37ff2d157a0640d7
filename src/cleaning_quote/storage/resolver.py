"""
Resource Resolver - locates a persisted quote from a short identifier.

Records were written under different conventions over time (with and
without the default folder, under different resource categories and
access modes), so one identifier can live at several addresses. The
resolver walks them in a fixed, documented order:

1. Normalize the identifier (fragment markers, query, known extension)
2. Candidate keys: the identifier, then <folder>/<identifier> unless
   the identifier already names a folder
3. Direct lookups: category (raw, image, video) x mode (upload,
   authenticated, private) x candidate key, first hit wins
4. Fallback searches: exact key, folder-prefixed key, filename only
5. Otherwise not found

The number of store calls is bounded by
len(categories) * len(modes) * len(candidates) + len(searches).
"""
import logging
import re
from typing import Optional
from urllib.parse import unquote

from ..errors import ResourceNotFoundError
from .base import AccessMode, ObjectStore, ResourceCategory, StorageRecord


logger = logging.getLogger(__name__)

CATEGORY_ORDER = (ResourceCategory.RAW, ResourceCategory.IMAGE, ResourceCategory.VIDEO)
MODE_ORDER = (AccessMode.UPLOAD, AccessMode.AUTHENTICATED, AccessMode.PRIVATE)

KNOWN_EXTENSIONS = re.compile(r"\.(json|txt|bin|pdf|xml|csv|yaml|yml)$", re.IGNORECASE)

MAX_CANDIDATE_KEYS = 2
MAX_SEARCHES = 3
MAX_LOOKUPS = len(CATEGORY_ORDER) * len(MODE_ORDER) * MAX_CANDIDATE_KEYS + MAX_SEARCHES


def normalize_identifier(identifier: str) -> str:
    """Strip whitespace, leading '#', a 'cid=' marker, query/fragment tails and a known extension."""
    value = unquote(str(identifier or "")).strip().lstrip('#')
    if value.startswith('cid='):
        value = value[len('cid='):]
    value = re.split(r"[?#&]", value, maxsplit=1)[0].strip()
    return KNOWN_EXTENSIONS.sub("", value)


def has_folder(identifier: str) -> bool:
    return '/' in identifier


def candidate_keys(identifier: str, default_folder: str = "") -> list[str]:
    """Ordered keys to try: as given, then folder-qualified."""
    keys = [identifier]
    folder = (default_folder or "").strip('/')
    if folder and not has_folder(identifier):
        keys.append(f"{folder}/{identifier}")
    return keys


def resolution_plan(identifier: str, default_folder: str = "") -> list[tuple[ResourceCategory, AccessMode, str]]:
    """Every direct lookup the resolver will attempt, in order."""
    keys = candidate_keys(identifier, default_folder)
    return [
        (category, mode, key)
        for category in CATEGORY_ORDER
        for mode in MODE_ORDER
        for key in keys
    ]


def escape_expression(value: str) -> str:
    return re.sub(r'(["\\])', r'\\\1', value)


def fallback_expressions(identifier: str, default_folder: str = "") -> list[str]:
    """Search expressions tried once the direct lookups are exhausted."""
    folder = (default_folder or "").strip('/') or "quotes"
    basename = identifier.rsplit('/', 1)[-1]
    expressions = [f'public_id="{escape_expression(identifier)}"']
    if not has_folder(identifier):
        expressions.append(f'public_id="{escape_expression(folder)}/{escape_expression(identifier)}"')
    expressions.append(f'filename="{escape_expression(basename)}"')
    return expressions


class ResourceResolver:
    """
    Resolves identifiers against an ObjectStore.

    Holds no mutable state; concurrent resolves of the same identifier
    each see the store as it is at call time.
    """

    def __init__(self, store: ObjectStore, default_folder: str = "quotes"):
        self.store = store
        self.default_folder = (default_folder or "").strip('/')

    def find(self, identifier: str) -> Optional[StorageRecord]:
        """Resolve, returning None when nothing matches. Transport errors propagate."""
        key = normalize_identifier(identifier)
        if not key:
            return None

        for category, mode, candidate in resolution_plan(key, self.default_folder):
            record = self.store.get_metadata(category, mode, candidate)
            if record is not None:
                logger.debug("Resolved %s -> %s/%s/%s", identifier, category.value, mode.value, record.key)
                return record

        for expression in fallback_expressions(key, self.default_folder):
            matches = self.store.search(expression, max_results=1)
            if matches:
                logger.debug("Resolved %s via search %s -> %s", identifier, expression, matches[0].key)
                return matches[0]

        logger.debug("No record for %s", identifier)
        return None

    def resolve(self, identifier: str) -> StorageRecord:
        """Resolve or raise ResourceNotFoundError."""
        record = self.find(identifier)
        if record is None:
            key = normalize_identifier(identifier)
            attempts = 0
            if key:
                attempts = len(resolution_plan(key, self.default_folder))
                attempts += len(fallback_expressions(key, self.default_folder))
            raise ResourceNotFoundError(identifier, attempts=attempts)
        return record
