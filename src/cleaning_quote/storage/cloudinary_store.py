"""
Cloudinary-backed object store.

Quotes are uploaded as raw JSON resources. Context metadata (locked,
status, cancel_reason, cancel_time) is read and written through the
Admin API; lookups by expression go through the Search API.
"""
import base64
import hashlib
import json
import logging
import time
from typing import Optional
from urllib.parse import quote

import requests

from ..config.settings import Settings
from ..errors import ConfigurationError, MutationError, ResourceNotFoundError, TransportError
from .base import AccessMode, CreatedResource, ObjectStore, ResourceCategory, StorageRecord


logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE = "https://res.cloudinary.com"


def encode_context(context: dict[str, str]) -> str:
    """Cloudinary context string: key=value|key=value, with '=' and '|' escaped in values."""
    parts = []
    for key, value in context.items():
        text = str(value).replace('\\', '\\\\').replace('=', '\\=').replace('|', '\\|')
        parts.append(f"{key}={text}")
    return "|".join(parts)


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """SHA-1 upload signature over the sorted, &-joined parameters."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1((to_sign + api_secret).encode('utf-8')).hexdigest()


def record_from_resource(resource: dict) -> StorageRecord:
    """Map an Admin/Search API resource document to a StorageRecord."""
    context = resource.get('context') or {}
    custom = context.get('custom', context) if isinstance(context, dict) else {}
    try:
        category = ResourceCategory(resource.get('resource_type', 'raw'))
        mode = AccessMode(resource.get('type', 'upload'))
    except ValueError:
        # fetch/animated/etc. are not places a quote can live
        category, mode = ResourceCategory.RAW, AccessMode.UPLOAD
    return StorageRecord(
        key=resource.get('public_id', ''),
        category=category,
        mode=mode,
        context={k: str(v) for k, v in (custom or {}).items()},
        tags=list(resource.get('tags') or []),
        url=resource.get('secure_url') or resource.get('url'),
    )


class CloudinaryStore(ObjectStore):
    """ObjectStore over the Cloudinary upload, Admin and Search APIs."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        if not (cloud_name and api_key and api_secret):
            raise ConfigurationError(
                "Missing Cloudinary env (CLOUDINARY_CLOUD_NAME / CLOUDINARY_API_KEY / CLOUDINARY_API_SECRET)"
            )
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> 'CloudinaryStore':
        return cls(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            timeout=settings.http_timeout,
        )

    @property
    def _auth(self) -> tuple[str, str]:
        return (self.api_key, self.api_secret)

    def _resource_url(self, category: ResourceCategory, mode: AccessMode, key: str) -> str:
        return f"{API_BASE}/{self.cloud_name}/resources/{category.value}/{mode.value}/{quote(key, safe='')}"

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"Cloudinary request failed: {e}") from e
        if response.status_code >= 500:
            raise TransportError(
                f"Cloudinary returned {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response

    def create(self, suggested_key: str, payload: dict) -> CreatedResource:
        timestamp = str(int(time.time()))
        params = {'format': 'json', 'public_id': suggested_key, 'timestamp': timestamp}
        body = json.dumps(payload, ensure_ascii=False).encode('utf-8')
        data_uri = "data:application/json;base64," + base64.b64encode(body).decode('ascii')

        response = self._send(
            'POST',
            f"{API_BASE}/{self.cloud_name}/raw/upload",
            data={
                **params,
                'file': data_uri,
                'api_key': self.api_key,
                'signature': sign_params(params, self.api_secret),
            },
        )
        if not response.ok:
            raise TransportError(
                f"Cloudinary upload failed: {response.text[:300]}", status_code=response.status_code
            )
        uploaded = response.json()
        return CreatedResource(
            key=uploaded.get('public_id', suggested_key),
            url=uploaded.get('secure_url') or uploaded.get('url'),
        )

    def get_metadata(self, category: ResourceCategory, mode: AccessMode, key: str) -> Optional[StorageRecord]:
        response = self._send('GET', self._resource_url(category, mode, key), auth=self._auth)
        if response.status_code == 404:
            return None
        if not response.ok:
            logger.debug("Metadata lookup %s/%s/%s -> %s", category.value, mode.value, key, response.status_code)
            return None
        return record_from_resource(response.json())

    def update_context(
        self,
        category: ResourceCategory,
        key: str,
        context: dict[str, str],
        mode: AccessMode = AccessMode.UPLOAD,
    ) -> StorageRecord:
        response = self._send(
            'POST',
            self._resource_url(category, mode, key),
            auth=self._auth,
            data={'context': encode_context(context)},
        )
        if not response.ok:
            raise MutationError("Failed to update context", detail=response.text)
        try:
            return record_from_resource(response.json())
        except ValueError:
            return StorageRecord(key=key, category=category, mode=mode, context=dict(context))

    def search(self, expression: str, max_results: int = 1) -> list[StorageRecord]:
        response = self._send(
            'POST',
            f"{API_BASE}/{self.cloud_name}/resources/search",
            auth=self._auth,
            headers={'Cache-Control': 'no-store', 'Pragma': 'no-cache'},
            json={'expression': expression, 'max_results': max_results, 'with_field': ['context', 'tags']},
        )
        if not response.ok:
            logger.debug("Search %s -> %s", expression, response.status_code)
            return []
        resources = response.json().get('resources') or []
        return [record_from_resource(r) for r in resources[:max_results]]

    def fetch_payload(self, record: StorageRecord) -> dict:
        delivery = f"{DELIVERY_BASE}/{self.cloud_name}/{record.category.value}/{record.mode.value}/{quote(record.key)}"
        urls = [u for u in (record.url, delivery + ".json", delivery) if u]

        for url in dict.fromkeys(urls):
            response = self._send('GET', url)
            if not response.ok:
                continue
            try:
                data = response.json()
            except ValueError:
                continue
            if isinstance(data, dict):
                return data
        raise ResourceNotFoundError(record.key)
