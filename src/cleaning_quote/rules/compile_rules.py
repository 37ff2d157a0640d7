"""
Rule Compiler - Validates the price rule table.

Reads price_rules.csv, validates every row and returns PricingRule objects
sorted by priority. Run as a script to check a table before deploying it.
"""
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

import pandas as pd


VALID_KINDS = {'flat', 'quantity_break', 'combo'}
VALID_SCOPES = {'row', 'service'}

REQUIRED_COLUMNS = ['rule_id', 'service', 'kind', 'base_price']


@dataclass(frozen=True)
class PricingRule:
    """
    One row of the price rule table.

    service / option_contains select the line items the rule prices.
    kind picks the pricing function:
      flat            - always base_price
      quantity_break  - discount_price once quantity >= min_qty
      combo           - discount_price when another row matching
                        combo_service / combo_option_contains exists
    """
    rule_id: str
    name: str
    service: str
    kind: str
    base_price: float
    option_contains: Optional[str] = None
    discount_price: Optional[float] = None
    min_qty: Optional[int] = None
    quantity_scope: str = "row"
    combo_service: Optional[str] = None
    combo_option_contains: Optional[str] = None
    note: str = ""
    priority: int = 50
    active: bool = True

    def matches(self, service: str, option: str) -> bool:
        """Whether this rule prices a row with the given service and option."""
        if (service or "").strip() != self.service:
            return False
        if self.option_contains and self.option_contains not in (option or ""):
            return False
        return True


def parse_bool(value: str) -> bool:
    """Parse a boolean from CSV string."""
    return value.lower() in ('true', '1', 'yes', 'on')


def parse_optional_int(value: str) -> Optional[int]:
    """Parse optional integer."""
    if not value or value.strip() == '':
        return None
    return int(value)


def parse_optional_float(value: str) -> Optional[float]:
    """Parse optional float."""
    if not value or value.strip() == '':
        return None
    return float(value)


def parse_optional_str(value: str) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if not value or value.strip() == '':
        return None
    return value.strip()


def validate_rule(row: dict, line_num: int) -> tuple[Optional[PricingRule], list[str]]:
    """
    Validate and parse a rule from a CSV row.

    Returns (rule, errors) - rule is None if validation failed.
    """
    errors = []

    rule_id = parse_optional_str(row.get('rule_id', ''))
    if not rule_id:
        return None, [f"Line {line_num}: rule_id is required"]

    service = parse_optional_str(row.get('service', ''))
    if not service:
        errors.append(f"Line {line_num}: service is required")

    kind = parse_optional_str(row.get('kind', ''))
    if kind not in VALID_KINDS:
        errors.append(f"Line {line_num}: invalid kind '{kind}', must be one of: {sorted(VALID_KINDS)}")

    scope = parse_optional_str(row.get('quantity_scope', '')) or 'row'
    if scope not in VALID_SCOPES:
        errors.append(f"Line {line_num}: invalid quantity_scope '{scope}'")

    try:
        base_price = parse_optional_float(row.get('base_price', ''))
        discount_price = parse_optional_float(row.get('discount_price', ''))
        min_qty = parse_optional_int(row.get('min_qty', ''))
        priority = parse_optional_int(row.get('priority', '')) or 50
    except ValueError as e:
        errors.append(f"Line {line_num}: numeric field is not a number ({e})")
        return None, errors

    if base_price is None:
        errors.append(f"Line {line_num}: base_price is required")
    elif base_price < 0:
        errors.append(f"Line {line_num}: base_price must not be negative")

    if kind in ('quantity_break', 'combo') and discount_price is None:
        errors.append(f"Line {line_num}: discount_price is required for {kind}")

    if kind == 'quantity_break' and (min_qty is None or min_qty < 1):
        errors.append(f"Line {line_num}: min_qty >= 1 is required for quantity_break")

    combo_service = parse_optional_str(row.get('combo_service', ''))
    if kind == 'combo' and not combo_service:
        errors.append(f"Line {line_num}: combo_service is required for combo")

    if errors:
        return None, errors

    return PricingRule(
        rule_id=rule_id,
        name=parse_optional_str(row.get('name', '')) or rule_id,
        service=service,
        kind=kind,
        base_price=base_price,
        option_contains=parse_optional_str(row.get('option_contains', '')),
        discount_price=discount_price,
        min_qty=min_qty,
        quantity_scope=scope,
        combo_service=combo_service,
        combo_option_contains=parse_optional_str(row.get('combo_option_contains', '')),
        note=parse_optional_str(row.get('note', '')) or "",
        priority=priority,
        active=parse_bool(row.get('active', 'true') or 'true'),
    ), []


def load_price_rules(rules_csv: Path) -> tuple[list[PricingRule], list[str]]:
    """
    Load and validate the rule table.

    Returns (active rules sorted by priority, errors).
    """
    if not rules_csv.exists():
        return [], [f"Rules file not found: {rules_csv}"]

    df = pd.read_csv(rules_csv, dtype=str).fillna('')
    df.columns = [c.strip() for c in df.columns]
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        return [], [f"Rules file is missing columns: {', '.join(missing)}"]

    rules = []
    all_errors = []
    seen = set()
    for line_num, row in enumerate(df.to_dict(orient='records'), start=2):  # +2 for 1-indexed header row
        rule, errors = validate_rule(row, line_num)
        if errors:
            all_errors.extend(errors)
            continue
        if rule.rule_id in seen:
            all_errors.append(f"Line {line_num}: duplicate rule_id '{rule.rule_id}'")
            continue
        seen.add(rule.rule_id)
        if rule.active:
            rules.append(rule)

    # Sort by priority (lower = higher priority)
    rules.sort(key=lambda r: r.priority)
    return rules, all_errors


def main():
    """CLI entry point."""
    import sys
    from cleaning_quote.config.settings import get_settings

    rules_csv = Path(sys.argv[1]) if len(sys.argv) > 1 else get_settings().price_rules

    print(f"Validating price rules: {rules_csv}")
    rules, errors = load_price_rules(rules_csv)

    if errors:
        print("Validation errors:")
        for err in errors:
            print(f"  ❌ {err}")
        print(f"\n❌ Validation failed with {len(errors)} errors")
        sys.exit(1)

    print(f"✅ {len(rules)} active rules")
    for rule in rules:
        print(f"   {rule.priority:>3}  {rule.rule_id:<24} {rule.kind:<15} {rule.service}")


if __name__ == "__main__":
    main()
