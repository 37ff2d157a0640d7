"""
Rule Matcher - Matches line items to price rules and evaluates them.

Rules are loaded from the price rule table and matched against each
row's service and option. Pricing functions receive the row quantity
and a QuoteContext describing the rest of the quote, so combo and
service-wide quantity discounts do not depend on row order.
"""
import logging
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..rules.compile_rules import PricingRule, load_price_rules
from .models import LineItem


logger = logging.getLogger(__name__)


class QuoteContext:
    """Read-only view of the whole line-item set, shared by all pricing functions."""

    def __init__(self, items: Sequence[LineItem], matched: Sequence[Optional[PricingRule]]):
        self._items = list(items)
        self._matched = list(matched)
        self._service_qty: dict[str, int] = {}
        for item, rule in zip(self._items, self._matched):
            if rule is not None:
                self._service_qty[rule.rule_id] = self._service_qty.get(rule.rule_id, 0) + item.quantity

    def service_quantity(self, rule: PricingRule) -> int:
        """Total quantity of every row priced by this rule."""
        return self._service_qty.get(rule.rule_id, 0)

    def has_row(self, service: str, option_contains: Optional[str] = None) -> bool:
        """Whether any row has this service (and option fragment, if given)."""
        for item in self._items:
            if (item.service or "").strip() != service:
                continue
            if option_contains and option_contains not in (item.option or ""):
                continue
            return True
        return False


PricingFunction = Callable[[PricingRule, int, QuoteContext], tuple[float, str]]


def price_flat(rule: PricingRule, quantity: int, context: QuoteContext) -> tuple[float, str]:
    return rule.base_price, ""


def price_quantity_break(rule: PricingRule, quantity: int, context: QuoteContext) -> tuple[float, str]:
    basis = context.service_quantity(rule) if rule.quantity_scope == 'service' else quantity
    if basis >= rule.min_qty:
        return rule.discount_price, rule.note
    return rule.base_price, ""


def price_combo(rule: PricingRule, quantity: int, context: QuoteContext) -> tuple[float, str]:
    if context.has_row(rule.combo_service, rule.combo_option_contains):
        return rule.discount_price, rule.note
    return rule.base_price, ""


PRICING_FUNCTIONS: dict[str, PricingFunction] = {
    'flat': price_flat,
    'quantity_break': price_quantity_break,
    'combo': price_combo,
}


class RuleMatcher:
    """
    Matches and applies price rules to line items.

    Rules come either from a rule table file or directly as a list
    (tests and alternative tables).
    """

    def __init__(self, rules_path: Optional[Path] = None, rules: Optional[list[PricingRule]] = None):
        """Load rules."""
        self.rules: list[PricingRule] = []
        self.errors: list[str] = []
        self.loaded = False

        if rules is not None:
            self.rules = sorted(rules, key=lambda r: r.priority)
            self.loaded = True
        elif rules_path is not None:
            self._load_rules(rules_path)

    def _load_rules(self, path: Path):
        """Load rules from the CSV table."""
        self.rules, self.errors = load_price_rules(path)
        self.loaded = bool(self.rules)
        for err in self.errors:
            logger.warning("Price rule skipped: %s", err)

    def find_rule(self, service: str, option: str) -> Optional[PricingRule]:
        """First rule (by priority) that prices this service/option, if any."""
        for rule in self.rules:
            if rule.matches(service, option):
                return rule
        return None

    def build_context(self, items: Sequence[LineItem]) -> tuple[QuoteContext, list[Optional[PricingRule]]]:
        """Match every row once and wrap the result in a QuoteContext."""
        matched = [self.find_rule(item.service, item.option) for item in items]
        return QuoteContext(items, matched), matched

    def apply_rule(self, rule: PricingRule, quantity: int, context: QuoteContext) -> tuple[float, str]:
        """
        Evaluate a rule for one row.

        Returns (unit_price, discount_note); the note is empty unless a
        threshold or combo discount was actually applied.
        """
        pricing_fn = PRICING_FUNCTIONS[rule.kind]
        return pricing_fn(rule, quantity, context)
