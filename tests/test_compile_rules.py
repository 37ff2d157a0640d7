"""
Rule table validation.
"""
import pytest

from cleaning_quote.config.settings import default_price_rules_path
from cleaning_quote.engine.rule_matcher import RuleMatcher
from cleaning_quote.rules.compile_rules import PricingRule, load_price_rules, validate_rule


HEADER = "rule_id,name,active,priority,service,option_contains,kind,base_price,discount_price,min_qty,quantity_scope,combo_service,combo_option_contains,note\n"


def write_rules(tmp_path, *rows):
    path = tmp_path / "rules.csv"
    path.write_text(HEADER + "".join(r + "\n" for r in rows), encoding="utf-8")
    return path


def test_packaged_table_is_valid():
    rules, errors = load_price_rules(default_price_rules_path())
    assert errors == []
    assert [r.rule_id for r in rules][:2] == ["AC-SPLIT", "AC-CEILING"]
    assert {r.kind for r in rules} == {"flat", "quantity_break", "combo"}


def test_rules_sorted_by_priority(tmp_path):
    path = write_rules(
        tmp_path,
        "B,,true,20,臭氧殺菌,,flat,200,,,,,,",
        "A,,true,10,防霉處理,,flat,300,,,,,,",
    )
    rules, errors = load_price_rules(path)
    assert errors == []
    assert [r.rule_id for r in rules] == ["A", "B"]


def test_inactive_rules_dropped(tmp_path):
    path = write_rules(tmp_path, "A,,false,10,防霉處理,,flat,300,,,,,,")
    rules, errors = load_price_rules(path)
    assert rules == []
    assert errors == []


@pytest.mark.parametrize("row, fragment", [
    ("X,,true,10,防霉處理,,bogus,300,,,,,,", "invalid kind"),
    ("X,,true,10,防霉處理,,quantity_break,300,250,,,,,", "min_qty"),
    ("X,,true,10,防霉處理,,quantity_break,300,,5,,,,", "discount_price"),
    ("X,,true,10,水塔清洗,,combo,1000,800,,,,,", "combo_service"),
    ("X,,true,10,防霉處理,,flat,abc,,,,,,", "not a number"),
    ("X,,true,10,防霉處理,,flat,-1,,,,,,", "negative"),
    ("X,,true,10,防霉處理,,flat,300,,,bogus,,,", "quantity_scope"),
    ("X,,true,10,,,flat,300,,,,,,", "service is required"),
])
def test_invalid_rows_reported(tmp_path, row, fragment):
    rules, errors = load_price_rules(write_rules(tmp_path, row))
    assert rules == []
    assert any(fragment in e for e in errors), errors


def test_duplicate_ids_reported(tmp_path):
    path = write_rules(
        tmp_path,
        "A,,true,10,防霉處理,,flat,300,,,,,,",
        "A,,true,20,臭氧殺菌,,flat,200,,,,,,",
    )
    rules, errors = load_price_rules(path)
    assert [r.rule_id for r in rules] == ["A"]
    assert any("duplicate" in e for e in errors)


def test_missing_file(tmp_path):
    rules, errors = load_price_rules(tmp_path / "nope.csv")
    assert rules == []
    assert "not found" in errors[0]


def test_validate_rule_defaults():
    rule, errors = validate_rule({'rule_id': 'R', 'service': '超長費用', 'kind': 'flat', 'base_price': '300'}, 2)
    assert errors == []
    assert rule.name == 'R'
    assert rule.priority == 50
    assert rule.quantity_scope == 'row'
    assert rule.active


def test_rule_matches_option_fragment():
    rule = PricingRule(rule_id="R", name="R", service="冷氣清洗", kind="flat", base_price=1, option_contains="分離式")
    assert rule.matches("冷氣清洗", "分離式（壁掛式）")
    assert rule.matches(" 冷氣清洗 ", "分離式")
    assert not rule.matches("冷氣清洗", "吊隱式（隱藏式）")
    assert not rule.matches("洗衣機清洗", "分離式")


def test_matcher_skips_bad_rows(tmp_path):
    path = write_rules(
        tmp_path,
        "A,,true,10,防霉處理,,flat,300,,,,,,",
        "B,,true,10,臭氧殺菌,,bogus,200,,,,,,",
    )
    matcher = RuleMatcher(path)
    assert matcher.loaded
    assert [r.rule_id for r in matcher.rules] == ["A"]
    assert len(matcher.errors) == 1
    assert matcher.find_rule("臭氧殺菌", "") is None
