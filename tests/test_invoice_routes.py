from __future__ import annotations

import asyncio
import copy
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from billing_api.app.billing.invoice_service import aggregate, money
from billing_api.app.main import app
from billing_api.app.models import Invoice, InvoiceItem, Party, Payment, User
from billing_api.app.services import invoice_audit
from billing_api.app.tax.gst_engine import LineItem

PAYLOAD = {
    "invoiceNumber": "INV-2024-0001",
    "date": "2024-03-10T00:00:00.000Z",
    "dueDate": "2024-04-10",
    "partyId": 1,
    "status": "pending",
    "taxType": "igst",
    "items": [
        {
            "description": "Steel rods",
            "hsn": "7214",
            "uom": "kg",
            "quantity": 2,
            "rate": 100,
            "discount": 10,
            "igst": 18,
        },
        {
            "description": "Fabrication labour",
            "isPercentageQty": True,
            "percentageValue": 50,
            "rate": 200,
        },
    ],
    "discount": {"type": "flat", "value": 0},
    "notes": ["Thank you"],
}


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    )


@pytest.fixture
def party(seed):
    asyncio.run(
        seed(
            Party(id=1, party_name="Acme Traders", party_type="customer"),
            User(id=7, name="Meena Iyer"),
        )
    )
    return 1


async def _create(client, payload=None, path="/api/invoices", **kwargs):
    resp = await client.post(path, json=payload or PAYLOAD, **kwargs)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.anyio
async def test_create_persists_aggregate_totals_and_logs_once(party):
    async with _client() as client:
        data = await _create(client, headers={"X-User-ID": "7"})
        await invoice_audit.drain()
        history = (await client.get(f"/api/invoices/{data['id']}/history")).json()

    totals = aggregate(
        [LineItem.from_mapping(item) for item in PAYLOAD["items"]], "igst"
    )
    assert Decimal(str(data["total"])) == money(totals.total) == Decimal("280.00")
    assert Decimal(str(data["tax"])) == money(totals.tax)
    assert data["sub_total"] == 300.0
    assert data["discount"] == 20.0
    assert data["tax_type"] == "igst"

    entries = history["data"]["entries"]
    assert [entry["action"] for entry in entries] == ["created"]
    assert entries[0]["user_name"] == "Meena Iyer"
    assert entries[0]["user_id"] == 7
    assert entries[0]["changes"]["total"] == 280.0


@pytest.mark.anyio
async def test_get_invoice_merges_item_meta(party):
    async with _client() as client:
        created = await _create(client)
        resp = await client.get(f"/api/invoices/{created['id']}")
        await invoice_audit.drain()

    body = resp.json()
    assert body["ok"] is True
    invoice = body["data"]
    assert invoice["tax_type"] == "igst"
    assert invoice["date"] == "2024-03-10"
    assert invoice["party"]["party_name"] == "Acme Traders"
    assert invoice["notes"] == ["Thank you"]
    rods, labour = invoice["items"]
    assert rods["igst"] == 18.0
    assert rods["igst_amount"] == 32.4
    assert rods["amount"] == 180.0
    assert rods["base_amount"] == 200.0
    assert labour["is_percentage_qty"] is True
    assert labour["percentage_value"] == 50.0
    assert labour["amount"] == 100.0
    assert labour["base_amount"] == 100.0
    assert labour["meta"]["v"] == 1


@pytest.mark.anyio
async def test_list_and_kind_separation(party):
    async with _client() as client:
        created = await _create(client)
        purchase = dict(PAYLOAD, invoiceNumber="PUR-7")
        await _create(client, purchase, path="/api/purchase-invoices")
        sales = (await client.get("/api/invoices")).json()["data"]
        missing = await client.get(f"/api/purchase-invoices/{created['id']}")
        await invoice_audit.drain()

    assert [inv["invoice_number"] for inv in sales] == ["INV-2024-0001"]
    assert sales[0]["party_name"] == "Acme Traders"
    assert len(sales[0]["items"]) == 2
    assert missing.status_code == 404
    assert missing.json()["ok"] is False
    assert missing.json()["error"]["message"] == "Purchase invoice not found"


@pytest.mark.anyio
async def test_next_number(party):
    async with _client() as client:
        first = (await client.get("/api/invoices/next-number")).json()["data"]
        await _create(client)
        second = (await client.get("/api/invoices/next-number")).json()["data"]
        other = (await client.get("/api/purchase-invoices/next-number")).json()["data"]
        await invoice_audit.drain()

    assert first == {"next_number": "0001"}
    assert second == {"next_number": "0002"}
    assert other == {"next_number": "0001"}


@pytest.mark.anyio
async def test_update_records_diff(party):
    changed = copy.deepcopy(PAYLOAD)
    changed["status"] = "paid"
    changed["items"][0]["quantity"] = 3
    async with _client() as client:
        created = await _create(client)
        await invoice_audit.drain()
        resp = await client.put(f"/api/invoices/{created['id']}", json=changed)
        await invoice_audit.drain()
        history = (await client.get(f"/api/invoices/{created['id']}/history")).json()
        fetched = (await client.get(f"/api/invoices/{created['id']}")).json()["data"]

    assert resp.status_code == 200
    changes = resp.json()["data"]["changes"]
    assert changes["status"] == {"from": "pending", "to": "paid"}
    assert changes["total"] == {"from": 280.0, "to": 370.0}
    entries = history["data"]["entries"]
    assert [entry["action"] for entry in entries] == ["updated", "created"]
    assert entries[0]["changes"]["status"]["to"] == "paid"
    assert entries[0]["user_name"] == "System"
    assert fetched["total"] == 370.0
    assert len(fetched["items"]) == 2


@pytest.mark.anyio
async def test_update_missing_invoice_is_404(party):
    async with _client() as client:
        resp = await client.put("/api/invoices/404", json=PAYLOAD)
    assert resp.status_code == 404
    assert resp.json()["error"] == {"code": 404, "message": "Sales invoice not found"}


@pytest.mark.anyio
async def test_delete_keeps_history(party):
    async with _client() as client:
        created = await _create(client)
        resp = await client.delete(f"/api/invoices/{created['id']}")
        gone = await client.get(f"/api/invoices/{created['id']}")
        await invoice_audit.drain()
        history = (await client.get(f"/api/invoices/{created['id']}/history")).json()

    assert resp.json()["data"] == {"id": created["id"], "deleted": True}
    assert gone.status_code == 404
    actions = sorted(entry["action"] for entry in history["data"]["entries"])
    assert actions == ["created", "deleted"]


@pytest.mark.anyio
async def test_balance_uses_payments(party, seed):
    async with _client() as client:
        created = await _create(client)
        await seed(
            Payment(invoice_id=created["id"], amount=Decimal("100"), mode="Cash"),
            Payment(invoice_id=created["id"], amount=Decimal("50.50"), mode="UPI"),
        )
        resp = await client.get(f"/api/invoices/{created['id']}/balance")
        await invoice_audit.drain()

    assert resp.json()["data"] == {
        "invoice_id": created["id"],
        "total": 280.0,
        "paid": 150.5,
        "balance": 129.5,
    }


@pytest.mark.anyio
async def test_payment_update(party):
    async with _client() as client:
        created = await _create(client, path="/api/purchase-invoices")
        await invoice_audit.drain()
        resp = await client.patch(
            f"/api/purchase-invoices/{created['id']}/payment",
            json={"amountPaid": 280, "status": "paid", "paymentMode": "UPI"},
        )
        await invoice_audit.drain()
        history = await client.get(f"/api/purchase-invoices/{created['id']}/history")

    assert resp.json()["data"] == {
        "id": created["id"],
        "status": "paid",
        "amount_paid": 280.0,
        "payment_mode": "UPI",
    }
    latest = history.json()["data"]["entries"][0]
    assert latest["action"] == "payment_updated"
    assert latest["changes"] == {
        "amount_paid": {"from": 0.0, "to": 280.0},
        "status": {"from": "pending", "to": "paid"},
    }


@pytest.mark.anyio
async def test_tax_type_inferred_from_shipping_pincode(party):
    payload = dict(PAYLOAD, shippingAddress="Andheri East, Mumbai 400001")
    payload.pop("taxType")
    local = dict(payload, shippingAddress="T Nagar, Chennai 600017")
    async with _client() as client:
        interstate = await _create(client, payload)
        intrastate = await _create(client, local)
        await invoice_audit.drain()

    assert interstate["tax_type"] == "igst"
    assert intrastate["tax_type"] == "sgst_cgst"
    assert intrastate["tax"] == interstate["tax"] == 50.4


@pytest.mark.anyio
async def test_malformed_numbers_do_not_fail(party):
    payload = dict(PAYLOAD, items=[{"description": "x", "quantity": "2", "rate": "abc"}])
    async with _client() as client:
        data = await _create(client, payload)
        await invoice_audit.drain()
    assert data["total"] == 0.0
    assert data["tax"] == 0.0


@pytest.mark.anyio
async def test_failing_audit_does_not_change_response(party, monkeypatch):
    async with _client() as client:
        ok_resp = await client.post("/api/invoices", json=PAYLOAD)
        await invoice_audit.drain()

        def broken_session():
            raise OperationalError("INSERT INTO invoice_history", {}, Exception("down"))

        monkeypatch.setattr(invoice_audit, "get_session", broken_session)
        failing = await client.post(
            "/api/invoices", json=dict(PAYLOAD, invoiceNumber="INV-2024-0002")
        )
        await invoice_audit.drain()
        monkeypatch.undo()
        history = await client.get(f"/api/invoices/{failing.json()['data']['id']}/history")

    assert failing.status_code == ok_resp.status_code == 201
    expected = {k: v for k, v in ok_resp.json()["data"].items() if k != "id"}
    expected["invoice_number"] = "INV-2024-0002"
    actual = {k: v for k, v in failing.json()["data"].items() if k != "id"}
    assert actual == expected
    assert history.json()["data"]["entries"] == []


@pytest.mark.anyio
async def test_invalid_body_is_422(party):
    async with _client() as client:
        resp = await client.post("/api/invoices", json={"date": "2024-03-10"})
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_legacy_item_meta_filled_from_defaults(party, seed):
    await seed(
        Invoice(
            id=50,
            invoice_number="OLD-0007",
            date=date(2023, 1, 5),
            type="sales",
            status="paid",
            party_id=1,
        )
    )
    await seed(
        InvoiceItem(
            invoice_id=50,
            description="Old consulting",
            rate=Decimal("400"),
            meta='{"sgst": 6, "cgst": 6, "isPercentageQty": "true", "percentageValue": 25}',
        ),
        InvoiceItem(invoice_id=50, description="Broken", quantity=2, rate=5, meta="{oops"),
    )
    async with _client() as client:
        resp = await client.get("/api/invoices/50")

    consulting, broken = resp.json()["data"]["items"]
    assert (consulting["sgst"], consulting["cgst"], consulting["igst"]) == (6.0, 6.0, 18.0)
    assert consulting["is_percentage_qty"] is True
    assert consulting["percentage_value"] == 25.0
    assert consulting["base_amount"] == 100.0
    assert (broken["sgst"], broken["cgst"], broken["igst"]) == (9.0, 9.0, 18.0)
    assert broken["is_percentage_qty"] is False
    assert broken["base_amount"] == 10.0


@pytest.mark.anyio
async def test_oversized_numbers_are_treated_as_missing(party):
    payload = dict(
        PAYLOAD,
        items=[
            {"description": "huge", "quantity": 1, "rate": "1e30"},
            {"description": "huger", "quantity": "1e999999", "rate": 10},
            {"description": "fine", "quantity": 1, "rate": 100, "igst": "1e40"},
        ],
        discount={"type": "flat", "value": 1e300},
    )
    async with _client() as client:
        resp = await client.post("/api/invoices", json=payload)
        await invoice_audit.drain()

    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["sub_total"] == 100.0
    assert data["tax"] == 18.0
    assert data["total"] == 100.0
