"""Tests for stock levels, manual adjustments and the ledger timeline."""

import pytest
from decimal import Decimal

from silo.models.stock import InventoryStock, InventoryTransaction, TransactionType
from silo.services.exceptions import InsufficientStockError, InventoryError
from silo.services.stock_ledger_service import StockLedgerService, classify_stock

API = "/api/v1"


class TestClassifyStock:
    def test_out_of_stock_at_zero(self):
        assert classify_stock(Decimal("0"), Decimal("5"), None) == "out_of_stock"

    def test_low_at_or_below_min(self):
        assert classify_stock(Decimal("5"), Decimal("5"), None) == "low"

    def test_overstocked_above_max(self):
        assert classify_stock(Decimal("21"), Decimal("5"), Decimal("20")) == "overstocked"

    def test_healthy_between_limits(self):
        assert classify_stock(Decimal("10"), Decimal("5"), Decimal("20")) == "healthy"


class TestManualAdjustments:
    def test_add_records_ledger_row(self, client, auth_headers, flour):
        response = client.post(
            f"{API}/stock/add",
            json={"item_id": flour.id, "quantity": "12.5", "notes": "Found in storeroom"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        txn = response.json()
        assert txn["transaction_type"] == "manual_addition"
        assert txn["quantity_before"] == 0.0
        assert txn["quantity_after"] == 12.5
        assert txn["unit"] == "Kg"
        assert txn["cost_per_unit_at_time"] == 4.0

    def test_add_requires_notes(self, client, auth_headers, flour):
        response = client.post(
            f"{API}/stock/add",
            json={"item_id": flour.id, "quantity": 1, "notes": ""},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_deduct_with_reason(self, client, auth_headers, flour, add_stock):
        add_stock(flour, 10)
        response = client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 3, "reason": "spoiled"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        txn = response.json()
        assert txn["transaction_type"] == "manual_deduction"
        assert txn["deduction_reason"] == "spoiled"
        assert txn["quantity_after"] == 7.0

    def test_deduct_others_requires_notes(self, client, auth_headers, flour, add_stock):
        add_stock(flour, 10)
        response = client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 1, "reason": "others"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_deduct_more_than_available(self, client, auth_headers, flour, add_stock):
        add_stock(flour, 2)
        response = client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 5, "reason": "damaged"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Insufficient stock. Available: 2")
        stock = client.get(f"{API}/stock/{flour.id}", headers=auth_headers).json()
        assert stock["quantity"] == 2.0

    def test_unknown_reason_rejected(self, client, auth_headers, flour):
        response = client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 1, "reason": "stolen"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_pos_user_cannot_adjust(self, client, headers_for, pos_user, main_branch, flour):
        response = client.post(
            f"{API}/stock/add",
            json={"item_id": flour.id, "quantity": 1, "notes": "x"},
            headers=headers_for(pos_user, main_branch),
        )
        assert response.status_code == 403


class TestLedgerService:
    def test_quantity_after_matches_stock_row(self, db_session, ctx_for, owner, flour, main_branch):
        service = StockLedgerService(db_session, ctx_for(owner))
        service.record(flour, TransactionType.MANUAL_ADDITION, Decimal("5"), main_branch.id)
        service.record(flour, TransactionType.PRODUCTION_CONSUME, Decimal("1.25"), main_branch.id)
        db_session.commit()

        stock = db_session.query(InventoryStock).filter_by(item_id=flour.id, branch_id=main_branch.id).one()
        last = db_session.query(InventoryTransaction).order_by(InventoryTransaction.id.desc()).first()
        assert stock.quantity == Decimal("3.75")
        assert last.quantity_after == stock.quantity
        assert last.quantity_before - last.quantity == last.quantity_after

    def test_record_never_goes_negative(self, db_session, ctx_for, owner, flour, main_branch):
        service = StockLedgerService(db_session, ctx_for(owner))
        with pytest.raises(InsufficientStockError):
            service.record(flour, TransactionType.MANUAL_DEDUCTION, Decimal("1"), main_branch.id)

    def test_count_adjustment_is_signed(self, db_session, ctx_for, owner, flour, main_branch):
        service = StockLedgerService(db_session, ctx_for(owner))
        service.record(flour, TransactionType.MANUAL_ADDITION, Decimal("10"), main_branch.id)
        txn = service.record(flour, TransactionType.INVENTORY_COUNT_ADJUSTMENT, Decimal("-4"), main_branch.id)
        assert txn.quantity == Decimal("4")
        assert txn.quantity_after == Decimal("6")

    def test_zero_quantity_rejected(self, db_session, ctx_for, owner, flour, main_branch):
        service = StockLedgerService(db_session, ctx_for(owner))
        with pytest.raises(InventoryError):
            service.record(flour, TransactionType.MANUAL_ADDITION, Decimal("0"), main_branch.id)


class TestStockLevels:
    def test_list_includes_items_without_stock_rows(self, client, auth_headers, flour, eggs, add_stock):
        add_stock(eggs, 24)
        response = client.get(f"{API}/stock/", headers=auth_headers)
        assert response.status_code == 200
        rows = {row["item_id"]: row for row in response.json()["items"]}
        assert rows[eggs.id]["quantity"] == 24.0
        assert rows[flour.id]["quantity"] == 0.0
        assert rows[flour.id]["status"] == "out_of_stock"

    def test_low_stock_filter(self, client, auth_headers, flour, eggs, add_stock):
        add_stock(eggs, 24)
        response = client.get(f"{API}/stock/?low_stock=true", headers=auth_headers)
        ids = [row["item_id"] for row in response.json()["items"]]
        assert flour.id in ids
        assert eggs.id not in ids

    def test_limits_and_stats(self, client, auth_headers, flour, eggs, add_stock):
        add_stock(eggs, 50)
        response = client.patch(
            f"{API}/stock/{eggs.id}/limits",
            json={"min_quantity": 10, "max_quantity": 40},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "overstocked"

        stats = client.get(f"{API}/stock/stats", headers=auth_headers).json()
        assert stats["total_items"] == 2
        assert stats["overstocked_count"] == 1
        assert stats["out_of_stock_count"] == 1

    def test_max_must_exceed_min(self, client, auth_headers, eggs):
        response = client.patch(
            f"{API}/stock/{eggs.id}/limits",
            json={"min_quantity": 10, "max_quantity": 10},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_stock_is_per_branch(self, client, auth_headers, headers_for, owner, second_branch, eggs, add_stock):
        add_stock(eggs, 5)
        response = client.get(f"{API}/stock/{eggs.id}", headers=headers_for(owner, second_branch))
        assert response.json()["quantity"] == 0.0

    def test_unknown_branch_filter(self, client, auth_headers, eggs):
        response = client.get(f"{API}/stock/{eggs.id}?branch_id=9999", headers=auth_headers)
        assert response.status_code == 404


class TestTimeline:
    def test_newest_first_with_paging(self, client, auth_headers, flour, eggs, add_stock):
        add_stock(flour, 1)
        add_stock(eggs, 2)
        add_stock(eggs, 3)
        response = client.get(f"{API}/inventory/timeline/?limit=2", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["has_more"] is True
        assert len(data["transactions"]) == 2
        assert data["transactions"][0]["quantity"] == 3.0

    def test_filter_by_type(self, client, auth_headers, flour, add_stock):
        add_stock(flour, 5)
        client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 1, "reason": "expired"},
            headers=auth_headers,
        )
        response = client.get(
            f"{API}/inventory/timeline/?transaction_type=manual_deduction", headers=auth_headers
        )
        rows = response.json()["transactions"]
        assert [row["deduction_reason"] for row in rows] == ["expired"]

    def test_invalid_filter_is_400(self, client, auth_headers):
        response = client.get(f"{API}/inventory/timeline/?transaction_type=teleport", headers=auth_headers)
        assert response.status_code == 400

    def test_item_timeline(self, client, auth_headers, flour, eggs, add_stock):
        add_stock(flour, 5)
        add_stock(eggs, 5)
        response = client.get(f"{API}/inventory/timeline/item/{flour.id}", headers=auth_headers)
        assert [row["item_id"] for row in response.json()["transactions"]] == [flour.id]

    def test_stats(self, client, auth_headers, flour, add_stock):
        add_stock(flour, 5)
        client.post(
            f"{API}/stock/deduct",
            json={"item_id": flour.id, "quantity": 1, "reason": "damaged"},
            headers=auth_headers,
        )
        stats = client.get(f"{API}/inventory/timeline/stats", headers=auth_headers).json()
        assert stats["today_additions"] == 1
        assert stats["today_deductions"] == 1
        assert stats["top_deduction_reasons"] == [{"reason": "damaged", "count": 1}]
