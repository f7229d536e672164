from decimal import Decimal

from billing_api.app.billing.invoice_service import (
    InvoiceNotFoundError,
    InvoiceTotals,
    aggregate,
    diff_invoice,
    extract_pincode,
    money,
    resolve_tax_type,
    summarize,
)
from billing_api.app.tax.gst_engine import LineItem, TaxType
from billing_api.app.utils.invoice_counter import next_number

ITEMS = [
    LineItem.from_mapping({"quantity": 2, "rate": 100, "discount": 10}),
    LineItem.from_mapping({"isPercentageQty": True, "percentageValue": 50, "rate": 200}),
    LineItem.from_mapping({"quantity": 1, "rate": "49.99", "sgst": 6, "cgst": 6}),
]


def test_empty_invoice_is_all_zero():
    assert aggregate([]) == InvoiceTotals()


def test_sums_line_amounts():
    totals = aggregate(ITEMS[:2], TaxType.IGST)
    assert totals.sub_total == 300
    assert totals.discount == 20
    assert totals.tax == Decimal("50.4")
    assert totals.igst == Decimal("50.4")
    assert totals.sgst == totals.cgst == 0
    assert totals.total == 280


def test_split_regime_components():
    totals = aggregate(ITEMS, TaxType.SGST_CGST)
    assert totals.sgst + totals.cgst == totals.tax
    assert money(totals.sgst) == Decimal("28.20")


def test_gst_not_applicable():
    totals = aggregate(ITEMS, TaxType.IGST, gst_applicable=False)
    assert totals.tax == 0
    assert totals.total == totals.sub_total - totals.discount


def test_aggregate_is_reentrant():
    assert aggregate(ITEMS, "igst") == aggregate(ITEMS, "igst")
    assert aggregate(reversed(ITEMS)) == aggregate(ITEMS)


def test_resolve_tax_type_from_pincode():
    assert resolve_tax_type(None, "Chennai 600001", "6") is TaxType.SGST_CGST
    assert resolve_tax_type(None, "Mumbai 400001", "6") is TaxType.IGST
    assert resolve_tax_type(None, "no pincode here") is TaxType.SGST_CGST
    assert resolve_tax_type("igst", "Chennai 600001") is TaxType.IGST
    assert extract_pincode("Plot 4, 5600012 Bengaluru 560001") == "560001"


def test_summarize_percent_discount_and_tcs():
    totals = aggregate(ITEMS[:2], TaxType.IGST)
    summary = summarize(
        totals,
        TaxType.IGST,
        discount={"type": "percent", "value": 10},
        additional_charges=[{"name": "Freight", "amount": 50}, {"amount": "x"}],
        apply_tcs=True,
        tcs_rate=1,
    )
    assert summary.discount_value == Decimal("30.00")
    assert summary.additional_charges_total == Decimal("50.00")
    assert summary.taxable_amount == Decimal("320.00")
    assert summary.tcs == Decimal("3.20")
    assert summary.igst_total == Decimal("50.40")
    assert summary.sgst_total == 0
    data = summary.as_dict()
    assert data["tax_type"] == "igst"
    assert data["discount"] == {"type": "percent", "value": 10.0}


def test_summarize_flat_discount_without_tcs():
    summary = summarize(aggregate(ITEMS[:1]), TaxType.SGST_CGST, discount={"value": 15})
    assert summary.discount_type == "flat"
    assert summary.taxable_amount == Decimal("185.00")
    assert summary.tcs == 0
    assert summary.sgst_total == Decimal("16.20")


def test_diff_invoice_reports_changed_fields():
    old = {"status": "draft", "invoice_number": "0001", "party_id": 1, "total": "280"}
    new = {"status": "paid", "invoice_number": "0001", "party_id": 2, "total": 280.001}
    assert diff_invoice(old, new) == {
        "status": {"from": "draft", "to": "paid"},
        "party_id": {"from": 1, "to": 2},
    }
    new["total"] = 300
    assert diff_invoice(old, new)["total"] == {"from": 280.0, "to": 300.0}


def test_not_found_message():
    exc = InvoiceNotFoundError("purchase", 9)
    assert str(exc) == "Purchase invoice not found"
    assert isinstance(exc, LookupError)


def test_next_number():
    assert next_number(None) == "0001"
    assert next_number("INV-2024-0041") == "0042"
    assert next_number("9") == "0010"
    assert next_number("DRAFT") == "0001"
    assert next_number("12345") == "12346"
