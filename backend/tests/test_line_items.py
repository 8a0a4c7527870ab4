# Overview: Pytest coverage for line item parsing, legacy order payloads and edit pairing.

import pytest

from stockledger.errors import StockValidationError
from stockledger.services.line_items import (
    LineItem,
    ensure_lines,
    identity_changed,
    lines_from_legacy,
    pair_lines,
    resolution_key,
    to_cents,
)


class TestLineItem:

    def test_from_mapping_accepts_camel_case(self):
        line = LineItem.from_mapping({
            "id": "7",
            "productName": "Widget",
            "quantity": "3",
            "purchasePrice": "12.345",
            "productId": 4,
            "productVariantId": 9,
        })
        assert line == LineItem(id=7, name="Widget", quantity=3, price_cents=1235, product_id=4, variant_id=9)

    def test_validate_rejects_bad_lines(self):
        with pytest.raises(StockValidationError):
            LineItem(name="Widget", quantity=-1).validate()
        with pytest.raises(StockValidationError):
            LineItem(name="", quantity=1).validate()
        with pytest.raises(StockValidationError):
            LineItem(name="Widget", quantity=True).validate()
        # A nameless line is fine when it carries an id to resolve by
        assert LineItem(name="", quantity=1, product_id=3).validate().product_id == 3

    def test_label_falls_back_to_ids(self):
        assert LineItem(name="Widget", quantity=1, id=5).label == "Widget"
        assert LineItem(name=" ", quantity=1, id=5, product_id=3).label == "item 5"
        assert LineItem(name="", quantity=1, product_id=3, variant_id=8).label == "variant 8"
        assert LineItem(name="", quantity=1, product_id=3).label == "product 3"

    def test_ensure_lines_rejects_unknown_shapes(self):
        with pytest.raises(StockValidationError):
            ensure_lines([("Widget", 1)])

    def test_to_cents_rounds_half_up(self):
        assert to_cents("0.005") == 1
        assert to_cents(19.99) == 1999
        assert to_cents(None) == 0
        with pytest.raises(StockValidationError):
            to_cents("ten")

    def test_resolution_key_precedence(self):
        assert resolution_key(LineItem(name="A", quantity=1, product_id=1, variant_id=2)) == ("variant", 2)
        assert resolution_key(LineItem(name="A", quantity=1, product_id=1)) == ("product", 1)
        assert resolution_key(LineItem(name=" A ", quantity=1)) == ("name", "a")


class TestLegacyOrderLines:

    def test_composite_key_then_product_key_then_own_quantity(self):
        lines = lines_from_legacy(
            [
                {"id": 1, "name": "Shirt", "productVariantId": 5},
                {"id": 2, "name": "Hat"},
                {"id": 3, "name": "Scarf", "quantity": 4},
                {"id": 4, "name": "Belt"},
            ],
            {"1_5": 2, "1": 9, "2": 3},
        )
        assert [(line.name, line.quantity) for line in lines] == [
            ("Shirt", 2), ("Hat", 3), ("Scarf", 4), ("Belt", 1),
        ]
        assert lines[0].variant_id == 5

    def test_json_text_is_decoded(self):
        lines = lines_from_legacy('[{"id": 1, "name": "Hat", "price": "2.50"}]', '{"1": 6}')
        assert lines == [LineItem(name="Hat", quantity=6, price_cents=250, product_id=1)]

    def test_entries_without_name_are_skipped(self):
        assert lines_from_legacy([{"id": 1}, {"id": 2, "name": ""}], {}) == []

    def test_invalid_json_raises(self):
        with pytest.raises(StockValidationError):
            lines_from_legacy("[not json", None)


class TestPairLines:

    def test_explicit_id_pairs_across_names(self):
        old = [LineItem(id=1, name="Widget", quantity=2, price_cents=500)]
        new = [LineItem(id=1, name="Gadget", quantity=2, price_cents=500)]
        pairs, removed, added = pair_lines(old, new)
        assert pairs == [(old[0], new[0])]
        assert removed == [] and added == []
        assert identity_changed(*pairs[0])

    def test_name_and_price_within_a_cent(self):
        old = [LineItem(name="Widget", quantity=2, price_cents=500)]
        new = [LineItem(name="widget", quantity=3, price_cents=501)]
        pairs, _, _ = pair_lines(old, new)
        assert pairs == [(old[0], new[0])]
        assert not identity_changed(*pairs[0])

    def test_price_change_still_pairs_within_group(self):
        old = [LineItem(name="Widget", quantity=2, price_cents=500, product_id=1)]
        new = [LineItem(name="Widget", quantity=2, price_cents=900)]
        pairs, removed, added = pair_lines(old, new)
        assert len(pairs) == 1
        assert removed == [] and added == []

    def test_different_variants_do_not_pair(self):
        old = [LineItem(name="Widget", quantity=2, variant_id=1)]
        new = [LineItem(name="Widget", quantity=2, variant_id=2)]
        pairs, removed, added = pair_lines(old, new)
        assert pairs == []
        assert removed == old
        assert added == new
