"""
Quote Serializer - canonical JSON form of a quote.

The stored payload uses the key names every existing share link was
written with, so old records keep loading:

    quoteInfo, customer, phone, address, technician, techPhone,
    cleanTime, otherNotes, items[], total
    item: service, option, qty, price, subtotal, overridden

Status is not part of the stored payload; it lives in the record's
context metadata and is added only to the viewer-facing document.
"""
import html
from datetime import datetime
from typing import Any, Optional

from ..engine.models import LineItem, Quote, QuoteStatus, normalize_price, normalize_quantity


METADATA_KEYS = {
    'quoteInfo': 'quote_info',
    'customer': 'customer',
    'phone': 'phone',
    'address': 'address',
    'technician': 'technician',
    'techPhone': 'tech_phone',
    'cleanTime': 'clean_time',
    'otherNotes': 'other_notes',
}


def _number(value: float) -> int | float:
    value = float(value)
    return int(value) if value.is_integer() else value


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def item_to_payload(item: LineItem) -> dict:
    return {
        'service': item.service,
        'option': item.option,
        'qty': item.quantity,
        'price': _number(item.unit_price),
        'subtotal': _number(item.subtotal),
        'overridden': bool(item.overridden),
    }


def item_from_payload(data: dict) -> LineItem:
    """Tolerant reader: legacy payloads carry numbers as strings."""
    quantity = normalize_quantity(data.get('qty'))
    price = normalize_price(data.get('price'))
    subtotal = data.get('subtotal')
    return LineItem(
        service=_text(data.get('service')),
        option=_text(data.get('option')),
        quantity=quantity,
        unit_price=price,
        overridden=_flag(data.get('overridden', False)),
        subtotal=normalize_price(subtotal) if subtotal not in (None, "") else quantity * price,
    )


def quote_to_payload(quote: Quote) -> dict:
    """Stored JSON for a quote."""
    payload = {key: getattr(quote, attr) or "" for key, attr in METADATA_KEYS.items()}
    payload['items'] = [item_to_payload(item) for item in quote.items]
    payload['total'] = _number(quote.total)
    return payload


def quote_from_payload(payload: dict) -> Quote:
    """Build a Quote from stored JSON. Unknown keys are ignored."""
    if not isinstance(payload, dict):
        raise TypeError(f"Quote payload must be an object, got {type(payload).__name__}")

    quote = Quote(**{attr: _text(payload.get(key)) for key, attr in METADATA_KEYS.items()})
    quote.items = [item_from_payload(it) for it in payload.get('items') or [] if isinstance(it, dict)]
    total = payload.get('total')
    if total in (None, ""):
        quote.total = sum(item.subtotal for item in quote.items)
    else:
        quote.total = normalize_price(total)
    return quote


def quote_to_document(quote: Quote) -> dict:
    """Viewer-facing document: stored payload plus identifier and lifecycle status."""
    document = quote_to_payload(quote)
    document['id'] = quote.identifier
    document['status'] = quote.status.value
    document['cancelReason'] = quote.cancel_reason
    document['cancelledAt'] = quote.cancelled_at.isoformat() if quote.cancelled_at else None
    return document


def quote_from_document(document: dict) -> Quote:
    quote = quote_from_payload(document)
    quote.identifier = document.get('id') or None
    quote.status = QuoteStatus(document.get('status') or QuoteStatus.DRAFT.value)
    quote.cancel_reason = document.get('cancelReason') or None
    quote.cancelled_at = parse_timestamp(document.get('cancelledAt'))
    return quote


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 timestamp (with optional trailing Z) or None."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def quote_to_markdown(payload: dict) -> str:
    """Markdown summary used for the confirmation issue and email."""
    rows = "\n".join(
        f"| {i} | {it.get('service', '')} | {it.get('option', '')} | {it.get('qty', '')} "
        f"| {it.get('price', '')} | {it.get('subtotal', '')} |"
        for i, it in enumerate(payload.get('items') or [], start=1)
    )
    return (
        "# 線上報價單確認\n"
        f"**客戶名稱**：{payload.get('customer', '')}  \n"
        f"**電話**：{payload.get('phone', '')}  \n"
        f"**地址**：{payload.get('address', '')}  \n"
        f"**預約時間**：{payload.get('cleanTime', '')}  \n"
        f"**技師**：{payload.get('technician', '')}（{payload.get('techPhone', '')}）  \n"
        "\n"
        "## 服務項目\n"
        "| # | 項目名稱 | 補充說明 | 數量 | 單價 | 小計 |\n"
        "|---|---|---:|---:|---:|---:|\n"
        f"{rows}\n"
        "\n"
        "**其他事項**：  \n"
        f"{payload.get('otherNotes', '')}\n"
        "\n"
        "## 合計\n"
        f"**{payload.get('total') or 0} 元**\n"
        "\n"
        f"> 承辦 / 報價：{payload.get('quoteInfo', '')}\n"
    )


def markdown_to_html(md: str, issue_url: Optional[str] = None, site_base: Optional[str] = None) -> str:
    """Wrap the markdown in a preformatted block for email bodies."""
    body = html.escape(md or "", quote=False).replace("\n", "<br/>")
    parts = [
        '<pre style="font-family: ui-monospace, SFMono-Regular, Menlo, Consolas, monospace; '
        f'white-space: pre-wrap;">{body}</pre>'
    ]
    if site_base:
        parts.append(f'<p><a href="{html.escape(site_base)}" target="_blank">開啟網站</a></p>')
    if issue_url:
        safe = html.escape(issue_url)
        parts.append(f'<p>GitHub Issue：<a href="{safe}">{safe}</a></p>')
    return "".join(parts)
