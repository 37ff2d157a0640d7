"""Storage subpackage - object stores and the resource resolver."""
from .base import AccessMode, CreatedResource, ObjectStore, ResourceCategory, StorageRecord
from .memory_store import InMemoryObjectStore
from .resolver import ResourceResolver

__all__ = [
    'AccessMode', 'CreatedResource', 'ObjectStore', 'ResourceCategory', 'StorageRecord',
    'InMemoryObjectStore', 'ResourceResolver',
]
