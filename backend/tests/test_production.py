"""Composite items and production run tests.

Dough: one batch yields 2 Kg from 500 grams of flour and 2 eggs.
"""

import pytest
from decimal import Decimal

from silo.services.exceptions import InventoryError, UnitConversionError
from silo.services.production_service import ProductionService
from silo.services.units import convert_units, normalize_unit, serving_to_storage

API = "/api/v1"


class TestUnits:
    def test_grams_to_kilograms(self):
        assert convert_units(Decimal("500"), "grams", "Kg") == Decimal("0.5")

    def test_liters_to_milliliters(self):
        assert convert_units(Decimal("1.5"), "L", "mL") == Decimal("1500")

    def test_aliases(self):
        assert normalize_unit("pcs") == "piece"
        assert normalize_unit("Kilogram") == "kg"

    def test_cross_category_rejected(self):
        with pytest.raises(UnitConversionError):
            convert_units(Decimal("1"), "Kg", "L")

    def test_unknown_unit(self):
        with pytest.raises(InventoryError):
            normalize_unit("bushel")

    def test_serving_to_storage(self, flour):
        assert serving_to_storage(Decimal("250"), flour) == Decimal("0.25")


class TestCompositeItems:
    def test_create_with_components(self, client, auth_headers, flour, eggs):
        response = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Pancake batter",
                "batch_quantity": 3,
                "batch_unit": "L",
                "components": [
                    {"item_id": flour.id, "quantity": 750},
                    {"item_id": eggs.id, "quantity": 6},
                ],
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["is_composite"] is True
        assert data["storage_unit"] == "L"
        # (0.75 Kg * 4.00 + 6 * 0.50) / 3 L
        assert data["cost_per_unit"] == 2.0
        assert {c["component_item_id"] for c in data["components"]} == {flour.id, eggs.id}

    def test_composite_cannot_contain_composite(self, client, auth_headers, dough, flour):
        response = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Pizza base",
                "batch_quantity": 1,
                "batch_unit": "piece",
                "components": [{"item_id": dough.id, "quantity": 1}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_list_expanded(self, client, auth_headers, dough):
        response = client.get(f"{API}/inventory/composite-items?expand=components", headers=auth_headers)
        assert response.status_code == 200
        item = response.json()["items"][0]
        assert item["id"] == dough.id
        assert len(item["components"]) == 2

    def test_replace_components(self, client, auth_headers, dough, eggs):
        response = client.put(
            f"{API}/inventory/composite-items/{dough.id}/components",
            json={"components": [{"item_id": eggs.id, "quantity": 4}]},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert [c["component_item_id"] for c in response.json()["components"]] == [eggs.id]

    def test_employee_cannot_create(self, client, headers_for, employee, main_branch, flour):
        response = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Roux",
                "batch_quantity": 1,
                "batch_unit": "Kg",
                "components": [{"item_id": flour.id, "quantity": 500}],
            },
            headers=headers_for(employee, main_branch),
        )
        assert response.status_code == 403

    def test_storage_unit_must_match_batch_unit(self, client, auth_headers, eggs):
        response = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Egg wash",
                "storage_unit": "piece",
                "batch_quantity": 1,
                "batch_unit": "Kg",
                "components": [{"item_id": eggs.id, "quantity": 4}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_batch_unit_edit_keeps_units_compatible(self, client, auth_headers, dough):
        response = client.patch(f"{API}/items/{dough.id}", json={"batch_unit": "piece"}, headers=auth_headers)
        assert response.status_code == 400


class TestCompositeCosting:
    """Composite cost follows its components: sum(qty x cost) / batch_quantity."""

    def _cost(self, client, headers, composite_id):
        response = client.get(f"{API}/inventory/composite-items/{composite_id}", headers=headers)
        return response.json()["cost_per_unit"]

    def test_receiving_a_component_recosts_the_composite(self, client, auth_headers, vendor, eggs):
        batter = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Batter",
                "batch_quantity": 1,
                "batch_unit": "Kg",
                "components": [{"item_id": eggs.id, "quantity": 10}],
            },
            headers=auth_headers,
        ).json()
        assert batter["cost_per_unit"] == 5.0

        po = client.post(
            f"{API}/purchase-orders/",
            json={"vendor_id": vendor.id, "items": [{"item_id": eggs.id, "quantity": 10}]},
            headers=auth_headers,
        ).json()
        response = client.post(
            f"{API}/purchase-orders/{po['id']}/receive",
            json={
                "invoice_image_url": "https://files.example.com/invoices/eggs.jpg",
                "items": [{"item_id": eggs.id, "received_quantity": 10, "total_cost": 20}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert client.get(f"{API}/items/{eggs.id}", headers=auth_headers).json()["cost_per_unit"] == 2.0
        assert self._cost(client, auth_headers, batter["id"]) == 20.0

    def test_component_cost_edit_recosts_the_composite(self, client, auth_headers, dough, flour):
        response = client.patch(f"{API}/items/{flour.id}", json={"cost_per_unit": 8}, headers=auth_headers)
        assert response.status_code == 200
        # (0.5 Kg * 8.00 + 2 * 0.50) / 2 Kg
        assert self._cost(client, auth_headers, dough.id) == 2.5

    def test_batch_quantity_edit_recosts_the_composite(self, client, auth_headers, dough):
        response = client.patch(f"{API}/items/{dough.id}", json={"batch_quantity": 1}, headers=auth_headers)
        assert response.status_code == 200
        # (0.5 Kg * 4.00 + 2 * 0.50) / 1 Kg
        assert response.json()["cost_per_unit"] == 3.0

    def test_business_price_recosts_the_composite(self, client, auth_headers, shared_item):
        brine = client.post(
            f"{API}/inventory/composite-items",
            json={
                "name": "Brine",
                "batch_quantity": 1,
                "batch_unit": "L",
                "components": [{"item_id": shared_item.id, "quantity": 500}],
            },
            headers=auth_headers,
        ).json()
        assert brine["cost_per_unit"] == 1.0

        client.patch(f"{API}/items/{shared_item.id}/price", json={"business_price": 4}, headers=auth_headers)
        assert self._cost(client, auth_headers, brine["id"]) == 2.0

        client.patch(f"{API}/items/{shared_item.id}/price", json={"business_price": None}, headers=auth_headers)
        assert self._cost(client, auth_headers, brine["id"]) == 1.0


class TestProduction:
    def test_check_reports_shortage(self, client, auth_headers, dough, flour, eggs, add_stock):
        add_stock(flour, 5)
        add_stock(eggs, 3)
        response = client.get(
            f"{API}/inventory/production/check?composite_item_id={dough.id}&batch_count=2",
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["can_produce"] is False
        rows = {row["item_id"]: row for row in data["availability"]}
        assert rows[flour.id]["required_quantity"] == 1.0
        assert rows[flour.id]["is_sufficient"] is True
        assert rows[eggs.id]["shortage"] == 1.0

    def test_produce_consumes_and_yields(self, client, auth_headers, dough, flour, eggs, add_stock):
        add_stock(flour, 5)
        add_stock(eggs, 10)
        response = client.post(
            f"{API}/inventory/production",
            json={"composite_item_id": dough.id, "batch_count": 2},
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        run = response.json()
        assert run["total_yield"] == 4.0
        assert run["yield_unit"] == "Kg"
        # 1 Kg flour at 4.00 + 4 eggs at 0.50
        assert run["total_cost"] == 6.0
        assert run["cost_per_batch"] == 3.0

        def quantity(item):
            return client.get(f"{API}/stock/{item.id}", headers=auth_headers).json()["quantity"]

        assert quantity(flour) == 4.0
        assert quantity(eggs) == 6.0
        assert quantity(dough) == 4.0

        timeline = client.get(
            f"{API}/inventory/timeline/?reference_type=production", headers=auth_headers
        ).json()
        types = sorted(row["transaction_type"] for row in timeline["transactions"])
        assert types == ["production_consume", "production_consume", "production_yield"]

    def test_produce_fails_without_stock(self, client, auth_headers, dough, flour, add_stock):
        add_stock(flour, 5)
        response = client.post(
            f"{API}/inventory/production",
            json={"composite_item_id": dough.id, "batch_count": 1},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert "Insufficient inventory" in response.json()["detail"]
        assert client.get(f"{API}/stock/{flour.id}", headers=auth_headers).json()["quantity"] == 5.0

    def test_batch_count_must_be_positive(self, client, auth_headers, dough):
        response = client.post(
            f"{API}/inventory/production",
            json={"composite_item_id": dough.id, "batch_count": 0},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_stats_and_history(self, client, auth_headers, dough, flour, eggs, add_stock):
        add_stock(flour, 5)
        add_stock(eggs, 10)
        run = client.post(
            f"{API}/inventory/production",
            json={"composite_item_id": dough.id, "batch_count": 1, "notes": "Morning prep"},
            headers=auth_headers,
        ).json()

        history = client.get(f"{API}/inventory/production?composite_item_id={dough.id}", headers=auth_headers)
        assert [p["id"] for p in history.json()["items"]] == [run["id"]]

        detail = client.get(f"{API}/inventory/production/{run['id']}", headers=auth_headers).json()
        assert len(detail["consumed_items"]) == 2

        stats = client.get(f"{API}/inventory/production/stats", headers=auth_headers).json()
        assert stats["today_count"] == 1
        assert stats["today_yield_by_item"][0]["total_yield"] == 2.0

    def test_service_raises_for_missing_composite(self, db_session, ctx_for, owner, flour):
        service = ProductionService(db_session, ctx_for(owner))
        with pytest.raises(InventoryError):
            service.check_availability(flour.id, Decimal("1"))


class TestProductionTemplates:
    def test_template_crud(self, client, auth_headers, dough):
        response = client.post(
            f"{API}/inventory/production/templates",
            json={"name": "Daily dough", "composite_item_id": dough.id, "default_batch_count": 3},
            headers=auth_headers,
        )
        assert response.status_code == 201
        template = response.json()

        response = client.patch(
            f"{API}/inventory/production/templates/{template['id']}",
            json={"default_batch_count": 2},
            headers=auth_headers,
        )
        assert response.json()["default_batch_count"] == 2

        assert client.delete(
            f"{API}/inventory/production/templates/{template['id']}", headers=auth_headers
        ).status_code == 200
        assert client.get(f"{API}/inventory/production/templates", headers=auth_headers).json()["items"] == []
