"""Sharing subpackage - quote serialization and share-link addressing."""
from .links import ShareLink, build_share_url, new_short_id, parse_share_link
from .serializer import quote_from_payload, quote_to_payload

__all__ = [
    'ShareLink', 'build_share_url', 'new_short_id', 'parse_share_link',
    'quote_from_payload', 'quote_to_payload',
]
