"""
Data models for the pricing engine and the quote lifecycle.

Uses dataclasses for structured, type-safe data representation.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


PROJECT_LABEL = "家電清洗服務"


class QuoteStatus(str, Enum):
    """Lifecycle status of a quote."""
    DRAFT = "draft"
    SHARED = "shared"
    CONFIRMED_LOCKED = "confirmed-locked"
    CANCELLED = "cancelled"


def normalize_quantity(value: Any) -> int:
    """Quantity from raw input; anything missing, non-numeric or below 1 becomes 1."""
    try:
        qty = int(float(value))
    except (TypeError, ValueError):
        return 1
    return max(1, qty)


def normalize_price(value: Any) -> float:
    """Unit price from raw input; missing or non-numeric becomes 0, negatives clamp to 0."""
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if price != price:  # NaN
        return 0.0
    return max(0.0, price)


def default_quote_info(today: Optional[date] = None) -> str:
    """Header line shown at the top of every quote."""
    today = today or date.today()
    return f"承辦項目：{PROJECT_LABEL} ｜ 報價日期：{today:%Y/%m/%d}"


@dataclass
class TraceStep:
    """A single step in the pricing trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class LineItem:
    """A single priced row of a quote."""
    service: str = ""
    option: str = ""
    quantity: int = 1
    unit_price: float = 0.0
    overridden: bool = False
    subtotal: float = 0.0
    discount_note: str = ""
    rule_id: Optional[str] = None

    def __post_init__(self):
        self.quantity = normalize_quantity(self.quantity)
        self.unit_price = normalize_price(self.unit_price)


@dataclass
class PricingResult:
    """Priced copy of a line-item set."""
    lines: list[LineItem]
    total: float
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)


@dataclass
class Quote:
    """
    A quote: customer/technician metadata plus ordered line items.

    Editing goes through add_item/remove_item/set_price/update_item so that
    the override flag follows the rules of the price column: a directly
    edited price is kept until that row's service, option or quantity changes.
    Prices and totals are only refreshed by PricingEngine.reprice().
    """
    quote_info: str = field(default_factory=default_quote_info)
    customer: str = ""
    phone: str = ""
    address: str = ""
    technician: str = ""
    tech_phone: str = ""
    clean_time: str = ""
    other_notes: str = ""
    items: list[LineItem] = field(default_factory=list)
    total: float = 0.0

    identifier: Optional[str] = None
    status: QuoteStatus = QuoteStatus.DRAFT
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    def add_item(self, service: str = "", option: str = "", quantity: Any = 1, price: Any = 0) -> LineItem:
        """Append a new row."""
        item = LineItem(service=service, option=option, quantity=quantity, unit_price=price)
        self.items.append(item)
        return item

    def remove_item(self, index: int) -> LineItem:
        """Remove and return the row at index."""
        return self.items.pop(index)

    def set_price(self, index: int, price: Any) -> LineItem:
        """Manually enter a row's unit price; the row stops being auto-priced."""
        item = self.items[index]
        item.unit_price = normalize_price(price)
        item.overridden = True
        return item

    def update_item(
        self,
        index: int,
        service: Optional[str] = None,
        option: Optional[str] = None,
        quantity: Any = None,
    ) -> LineItem:
        """Change a row's service/option/quantity. Any such change clears its override."""
        item = self.items[index]
        changed = False
        if service is not None:
            item.service = service
            changed = True
        if option is not None:
            item.option = option
            changed = True
        if quantity is not None:
            item.quantity = normalize_quantity(quantity)
            changed = True
        if changed:
            item.overridden = False
        return item

    def apply_edits(self, rows: list[dict]) -> None:
        """
        Merge an edited grid (dicts with service/option/quantity/unit_price/overridden) into items.

        With the same row count, each row is diffed against the current item
        so the override rules apply. When rows were added or removed the
        grid is taken as-is, override flags included.
        """
        if len(rows) != len(self.items):
            self.items = [
                LineItem(
                    service=str(row.get('service') or ''),
                    option=str(row.get('option') or ''),
                    quantity=row.get('quantity'),
                    unit_price=row.get('unit_price'),
                    overridden=bool(row.get('overridden')),
                )
                for row in rows
            ]
            return

        for index, (row, item) in enumerate(zip(rows, self.items)):
            service = str(row.get('service') or '')
            option = str(row.get('option') or '')
            quantity = normalize_quantity(row.get('quantity'))
            price = normalize_price(row.get('unit_price'))
            flag = bool(row.get('overridden', item.overridden))
            flag_toggled = flag != item.overridden

            if (service, option, quantity) != (item.service, item.option, item.quantity):
                self.update_item(index, service=service, option=option, quantity=quantity)
            if price != item.unit_price:
                self.set_price(index, price)
            elif flag_toggled:
                item.overridden = flag

    @property
    def is_cancelled(self) -> bool:
        return self.status == QuoteStatus.CANCELLED

    @property
    def is_locked(self) -> bool:
        return self.status in (QuoteStatus.CONFIRMED_LOCKED, QuoteStatus.CANCELLED)
