"""
Pricing engine behavior against the packaged rule table.
"""
import pytest

from cleaning_quote.engine.models import LineItem, Quote


SPLIT = ("冷氣清洗", "分離式（壁掛式）")
CEILING = ("冷氣清洗", "吊隱式（隱藏式）")
WASHER = ("洗衣機清洗", "直立式")


def priced(engine, *rows):
    """rows are (service, option, qty) or (service, option, qty, price)."""
    quote = Quote()
    for row in rows:
        quote.add_item(*row)
    engine.reprice(quote)
    return quote


@pytest.mark.parametrize("qty, unit, noted", [
    (1, 1800, False),
    (2, 1800, False),
    (3, 1500, True),
    (4, 1500, True),
])
def test_split_ac_quantity_break(engine, qty, unit, noted):
    quote = priced(engine, (*SPLIT, qty))
    line = quote.items[0]
    assert line.unit_price == unit
    assert line.subtotal == qty * unit
    assert bool(line.discount_note) is noted
    if noted:
        assert line.discount_note == "已套用三台以上優惠價"


def test_split_ac_threshold_counts_all_rows(engine):
    quote = priced(engine, (*SPLIT, 2), ("臭氧殺菌", "", 1), (*SPLIT, 1))
    assert quote.items[0].unit_price == 1500
    assert quote.items[2].unit_price == 1500


def test_ceiling_ac_is_flat(engine):
    for qty in (1, 3, 10):
        quote = priced(engine, (*CEILING, qty))
        assert quote.items[0].unit_price == 2800
        assert quote.items[0].discount_note == ""


def test_ceiling_ac_does_not_count_toward_split_threshold(engine):
    quote = priced(engine, (*SPLIT, 2), (*CEILING, 2))
    assert quote.items[0].unit_price == 1800


def test_washer_without_split_ac(engine):
    quote = priced(engine, (*WASHER, 1), (*CEILING, 1))
    assert quote.items[0].unit_price == 2000
    assert quote.items[0].discount_note == ""


@pytest.mark.parametrize("rows", [
    [(*WASHER, 1), (*SPLIT, 1)],
    [(*SPLIT, 1), (*WASHER, 1)],
])
def test_washer_combo_is_order_independent(engine, rows):
    quote = priced(engine, *rows)
    washer = next(it for it in quote.items if it.service == WASHER[0])
    assert washer.unit_price == 1800
    assert washer.discount_note == "已套用冷氣清洗優惠價"


@pytest.mark.parametrize("service, qty, unit", [
    ("防霉處理", 4, 300),
    ("防霉處理", 5, 250),
    ("臭氧殺菌", 4, 200),
    ("臭氧殺菌", 6, 150),
])
def test_per_row_quantity_breaks(engine, service, qty, unit):
    quote = priced(engine, (service, "", qty))
    assert quote.items[0].unit_price == unit


@pytest.mark.parametrize("service, unit", [
    ("變形金剛機型", 500),
    ("一體式水盤機型", 500),
    ("超長費用", 300),
])
def test_surcharges_are_quantity_insensitive(engine, service, unit):
    for qty in (1, 7):
        quote = priced(engine, (service, "特殊機型額外加收費", qty))
        assert quote.items[0].unit_price == unit


def test_water_tower_combo(engine):
    alone = priced(engine, ("水塔清洗", "", 1))
    assert alone.items[0].unit_price == 1000

    with_pipes = priced(engine, ("水塔清洗", "", 1), ("自來水管清洗", "一廚兩衛", 1, 3500))
    assert with_pipes.items[0].unit_price == 800
    assert with_pipes.items[0].discount_note == "已套用自來水管清洗優惠價"
    # no rule for pipe cleaning: entered price is kept
    assert with_pipes.items[1].unit_price == 3500


def test_total_is_sum_of_subtotals(engine):
    quote = priced(
        engine,
        (*SPLIT, 3), (*WASHER, 1), ("防霉處理", "", 5), ("超長費用", "", 2), ("", "", 1, 120),
    )
    assert quote.total == sum(it.subtotal for it in quote.items)
    for it in quote.items:
        assert it.subtotal == it.quantity * it.unit_price
    assert quote.total == 3 * 1500 + 1800 + 5 * 250 + 2 * 300 + 120


def test_repricing_is_idempotent(engine):
    quote = priced(engine, (*SPLIT, 3), (*WASHER, 2), ("水塔清洗", "", 1))
    first = [(it.unit_price, it.subtotal, it.discount_note) for it in quote.items]
    engine.reprice(quote)
    second = [(it.unit_price, it.subtotal, it.discount_note) for it in quote.items]
    assert first == second


def test_note_cleared_when_discount_no_longer_applies(engine):
    quote = priced(engine, (*SPLIT, 3))
    assert quote.items[0].discount_note

    quote.update_item(0, quantity=2)
    engine.reprice(quote)
    assert quote.items[0].unit_price == 1800
    assert quote.items[0].discount_note == ""


def test_price_does_not_modify_input(engine):
    items = [LineItem(service=SPLIT[0], option=SPLIT[1], quantity=3)]
    result = engine.price(items)
    assert items[0].unit_price == 0
    assert result.lines[0].unit_price == 1500


class TestOverrides:
    def test_override_survives_unrelated_edit(self, engine):
        quote = priced(engine, (*SPLIT, 1), (*CEILING, 1))
        quote.set_price(0, 1234)
        engine.reprice(quote)
        assert quote.items[0].unit_price == 1234

        quote.update_item(1, service="臭氧殺菌", option="")
        engine.reprice(quote)
        assert quote.items[0].unit_price == 1234
        assert quote.items[0].overridden

    def test_own_edit_clears_override(self, engine):
        quote = priced(engine, (*SPLIT, 1))
        quote.set_price(0, 999)
        engine.reprice(quote)
        assert quote.items[0].unit_price == 999

        quote.update_item(0, quantity=2)
        engine.reprice(quote)
        assert not quote.items[0].overridden
        assert quote.items[0].unit_price == 1800

    def test_overridden_row_still_counts_toward_threshold(self, engine):
        quote = priced(engine, (*SPLIT, 2), (*SPLIT, 1))
        quote.set_price(1, 1000)
        engine.reprice(quote)
        assert quote.items[0].unit_price == 1500
        assert quote.items[1].unit_price == 1000

    def test_grid_edit_of_price_sets_override(self, engine):
        quote = priced(engine, (*SPLIT, 1))
        rows = [{'service': SPLIT[0], 'option': SPLIT[1], 'quantity': 1, 'unit_price': 1600, 'overridden': False}]
        quote.apply_edits(rows)
        engine.reprice(quote)
        assert quote.items[0].overridden
        assert quote.items[0].unit_price == 1600

    def test_grid_edit_of_quantity_clears_override(self, engine):
        quote = priced(engine, (*SPLIT, 1))
        quote.set_price(0, 1600)
        rows = [{'service': SPLIT[0], 'option': SPLIT[1], 'quantity': 3, 'unit_price': 1600, 'overridden': True}]
        quote.apply_edits(rows)
        engine.reprice(quote)
        assert not quote.items[0].overridden
        assert quote.items[0].unit_price == 1500

    def test_grid_tick_pins_current_price(self, engine):
        quote = priced(engine, (*SPLIT, 1))
        rows = [{'service': SPLIT[0], 'option': SPLIT[1], 'quantity': 1, 'unit_price': 1800, 'overridden': True}]
        quote.apply_edits(rows)
        assert quote.items[0].overridden

        quote.add_item(*SPLIT, 2)
        engine.reprice(quote)
        assert quote.items[0].unit_price == 1800
        assert quote.items[1].unit_price == 1500

    def test_grid_untick_returns_row_to_rules(self, engine):
        quote = priced(engine, (*SPLIT, 1), (*SPLIT, 2))
        quote.set_price(0, 1800)
        rows = [
            {'service': SPLIT[0], 'option': SPLIT[1], 'quantity': 1, 'unit_price': 1800, 'overridden': False},
            {'service': SPLIT[0], 'option': SPLIT[1], 'quantity': 2, 'unit_price': 1500, 'overridden': False},
        ]
        quote.apply_edits(rows)
        engine.reprice(quote)
        assert not quote.items[0].overridden
        assert quote.items[0].unit_price == 1500


class TestNormalization:
    @pytest.mark.parametrize("raw, expected", [(None, 1), ("", 1), ("abc", 1), (0, 1), (-3, 1), ("2", 2), (2.7, 2)])
    def test_quantity(self, raw, expected):
        assert LineItem(quantity=raw).quantity == expected

    @pytest.mark.parametrize("raw, expected", [(None, 0), ("", 0), ("x", 0), (float("nan"), 0), (-5, 0), ("150", 150)])
    def test_price(self, raw, expected):
        assert LineItem(unit_price=raw).unit_price == expected

    def test_bad_input_never_raises(self, engine):
        quote = Quote(items=[LineItem(service="冷氣清洗", option="分離式", quantity="lots", unit_price="free")])
        engine.reprice(quote)
        assert quote.items[0].quantity == 1
        assert quote.items[0].unit_price == 1800


def test_trace_mentions_rule(engine):
    quote = Quote()
    quote.add_item(*SPLIT, 3)
    result = engine.reprice(quote)
    text = result.get_trace_text()
    assert "AC-SPLIT" in text
    assert "Total" in text
