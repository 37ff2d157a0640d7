"""
Share-link addressing.

Current links carry a short identifier:  <site>#cid=<identifier>
Legacy links carry the whole quote inline: <site>#data=<url-encoded JSON>
Admin mode is a URL flag (admin=1 in the query or the fragment); it only
changes which actions are offered and is never persisted.
"""
import json
import secrets
import string
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, quote, unquote, urlsplit


_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class ShareLink:
    """What a viewer URL points at."""
    cid: Optional[str] = None
    data: Optional[dict] = None
    fragment: str = ""
    admin: bool = False

    @property
    def is_legacy(self) -> bool:
        return self.cid is None and self.data is not None


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_short_id(now_ms: Optional[int] = None) -> str:
    """Short identifier: 'q' + base36 epoch millis + 4 random base36 chars."""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"q{to_base36(now_ms)}{suffix}"


def _fragment_params(fragment: str) -> dict[str, str]:
    """key=value pairs inside a fragment such as 'cid=abc&admin=1'."""
    params = {}
    for part in fragment.lstrip('#?&').replace('?', '&').split('&'):
        if '=' in part:
            key, _, value = part.partition('=')
            params.setdefault(key, value)
    return params


def parse_share_link(url: str) -> ShareLink:
    """
    Parse a viewer URL (or a bare '#...' fragment).

    cid is taken from the query string first, then from the fragment.
    A fragment starting with 'data=' is a legacy inline quote; an
    undecodable blob yields data=None.
    """
    parts = urlsplit(url or "")
    query = {k: v[0] for k, v in parse_qs(parts.query).items() if v}
    fragment = parts.fragment

    admin = query.get('admin') == '1' or _fragment_params(fragment).get('admin') == '1'

    cid = query.get('cid') or None
    if not cid:
        raw = _fragment_params(fragment).get('cid')
        cid = unquote(raw) if raw else None
    if cid:
        return ShareLink(cid=cid, fragment=fragment, admin=admin)

    if fragment.startswith('data='):
        try:
            data = json.loads(unquote(fragment[len('data='):]))
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = None
        return ShareLink(data=data, fragment=fragment, admin=admin)

    return ShareLink(fragment=fragment, admin=admin)


def build_share_url(base_url: str, cid: str, admin: bool = False) -> str:
    """Current-scheme link for a persisted quote."""
    url = f"{base_url.rstrip('#')}#cid={quote(cid, safe='')}"
    if admin:
        url += "&admin=1"
    return url


def build_data_link(base_url: str, payload: dict) -> str:
    """Legacy inline link; needs no server round-trip."""
    blob = quote(json.dumps(payload, ensure_ascii=False, separators=(',', ':')), safe='')
    return f"{base_url.rstrip('#')}#data={blob}"
