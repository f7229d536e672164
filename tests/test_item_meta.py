import json
from decimal import Decimal

import pytest

from billing_api.app.tax.gst_engine import (
    GstRates,
    LineItem,
    TaxType,
    compute_item_amounts,
)
from billing_api.app.tax.item_meta import META_VERSION, ItemMeta, load_mapping


@pytest.mark.parametrize("raw", [None, "not json", "[1,2]", {"sgst": "abc"}, b"{}"])
def test_malformed_meta_yields_defaults(raw):
    meta = ItemMeta.from_raw(raw)
    assert (meta.sgst, meta.cgst, meta.igst) == (9, 9, 18)
    assert meta.is_percentage_qty is False
    assert meta.percentage_value is None
    assert meta.sgst_amount == 0
    assert meta.version == META_VERSION


def test_legacy_camel_case_blob():
    raw = json.dumps(
        {
            "sgst": 6,
            "cgst": 6,
            "igst": 0,
            "sgstAmount": 12.5,
            "cgstAmount": 12.5,
            "taxableAmount": 208.33,
            "percentageValue": "25",
            "isPercentageQty": "true",
        }
    )
    meta = ItemMeta.from_raw(raw)
    assert meta.sgst == 6
    assert meta.igst == 18
    assert meta.sgst_amount == Decimal("12.5")
    assert meta.taxable_amount == Decimal("208.33")
    assert meta.percentage_value == 25
    assert meta.is_percentage_qty is True


def test_missing_rates_use_configured_defaults():
    rates = GstRates(sgst=Decimal("2.5"), cgst=Decimal("2.5"), igst=Decimal("5"))
    meta = ItemMeta.from_raw({"cgst": 14}, rates)
    assert (meta.sgst, meta.cgst, meta.igst) == (Decimal("2.5"), 14, Decimal("5"))


def test_from_computation_records_active_regime_only():
    item = LineItem(quantity=Decimal("3"), rate=Decimal("33.33"), igst=Decimal("12"))
    amounts = compute_item_amounts(item, TaxType.IGST)
    meta = ItemMeta.from_computation(item, amounts, TaxType.IGST)
    assert meta.sgst == 0
    assert meta.cgst == 0
    assert meta.igst == 12
    assert meta.igst_amount == Decimal("12.00")
    assert meta.taxable_amount == Decimal("99.99")

    data = meta.as_dict()
    assert data["v"] == META_VERSION
    assert data["igst_amount"] == 12.0
    assert data["percentage_value"] is None


def test_round_trip_through_json_column():
    item = LineItem(
        rate=Decimal("200"),
        is_percentage_qty=True,
        percentage_value=Decimal("50"),
    )
    amounts = compute_item_amounts(item)
    meta = ItemMeta.from_computation(item, amounts, TaxType.SGST_CGST)
    stored = json.dumps(meta.as_dict())
    meta = ItemMeta.from_raw(stored)
    assert meta.is_percentage_qty is True
    assert meta.percentage_value == 50
    assert meta.sgst_amount == 9


def test_merge_fills_only_missing_inputs():
    meta = ItemMeta.from_raw(
        {"sgst": 2.5, "cgst": 2.5, "isPercentageQty": True, "percentageValue": 40}
    )
    merged = meta.merge_into(LineItem(rate=Decimal("100"), cgst=Decimal("6")))
    assert merged.sgst == Decimal("2.5")
    assert merged.cgst == 6
    assert merged.is_percentage_qty is True
    assert compute_item_amounts(merged).base_amount == 40


def test_load_mapping_rejects_non_objects():
    assert load_mapping("[1, 2]") == {}
    assert load_mapping(42) == {}
    assert load_mapping('{"a": 1}') == {"a": 1}
