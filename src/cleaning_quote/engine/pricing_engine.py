"""
Pricing Engine - recomputes unit prices, subtotals and the quote total.

Resolution order for every row:
1. Normalize quantity (>= 1) and price (>= 0, default 0)
2. Clear any previous discount note
3. If the row's price was entered by hand (overridden), keep it
4. Otherwise find the first matching price rule and evaluate it
   against the whole quote (quantity breaks, combo discounts)
5. Rows with no rule keep their entered price
6. subtotal = quantity x unit price; total = sum of subtotals

Pricing is computed from scratch on every call, so running it twice
over an unchanged item set gives identical prices, subtotals and notes.
"""
import dataclasses
from typing import Optional, Sequence

from ..config.settings import get_settings, Settings
from .models import LineItem, PricingResult, Quote
from .rule_matcher import RuleMatcher


class PricingEngine:
    """Core pricing engine over a line-item set."""

    def __init__(self, settings: Optional[Settings] = None, rule_matcher: Optional[RuleMatcher] = None):
        """Initialize engine with the price rule table."""
        self.settings = settings or get_settings()
        self.rule_matcher = rule_matcher or RuleMatcher(self.settings.price_rules)

    def reload_rules(self):
        """Reload the rule table from disk."""
        self.rule_matcher = RuleMatcher(self.settings.price_rules)

    def price(self, items: Sequence[LineItem]) -> PricingResult:
        """
        Price a line-item set.

        Args:
            items: Ordered line items; they are not modified

        Returns:
            PricingResult with priced copies of the items and the total
        """
        lines = [dataclasses.replace(item, discount_note="", rule_id=None) for item in items]
        context, matched = self.rule_matcher.build_context(lines)

        result = PricingResult(lines=lines, total=0.0)
        result.add_trace("Rules", "Active price rules", str(len(self.rule_matcher.rules)))

        for idx, (line, rule) in enumerate(zip(lines, matched), start=1):
            label = f"Row {idx}"
            if rule is not None:
                line.rule_id = rule.rule_id

            if line.overridden:
                result.add_trace(label, f"{line.service or '-'} manual price kept", _money(line.unit_price))
            elif rule is not None:
                line.unit_price, line.discount_note = self.rule_matcher.apply_rule(rule, line.quantity, context)
                detail = f"{line.service} via {rule.rule_id}"
                if line.discount_note:
                    detail += f" ({line.discount_note})"
                result.add_trace(label, detail, _money(line.unit_price))
            else:
                result.add_trace(label, f"{line.service or '-'} has no price rule, entered price kept", _money(line.unit_price))

            line.subtotal = line.quantity * line.unit_price
            result.total += line.subtotal

        result.add_trace("Total", f"{len(lines)} rows", _money(result.total))
        return result

    def reprice(self, quote: Quote) -> PricingResult:
        """Price a quote's items and store the priced rows and total on it."""
        result = self.price(quote.items)
        quote.items = result.lines
        quote.total = result.total
        return result


def _money(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"
