"""Catalog item tests: visibility, shared items and business price overrides."""

import pytest

API = "/api/v1"


class TestItems:
    def test_create_normalizes_units(self, client, auth_headers):
        response = client.post(
            f"{API}/items/",
            json={"name": "Olive oil", "unit": "ml", "storage_unit": "liters", "cost_per_unit": 28.5},
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        item = response.json()
        assert item["unit"] == "mL"
        assert item["storage_unit"] == "L"
        assert item["is_shared"] is False

    def test_incompatible_units_rejected(self, client, auth_headers):
        response = client.post(
            f"{API}/items/", json={"name": "Milk", "unit": "grams", "storage_unit": "L"}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_list_includes_shared_items(self, client, auth_headers, flour, shared_item):
        response = client.get(f"{API}/items/", headers=auth_headers)
        ids = {row["id"] for row in response.json()["items"]}
        assert ids == {flour.id, shared_item.id}

    def test_search_and_category_filters(self, client, auth_headers, flour, eggs):
        response = client.get(f"{API}/items/?category=Dairy", headers=auth_headers)
        assert [row["id"] for row in response.json()["items"]] == [eggs.id]
        response = client.get(f"{API}/items/?search=flo", headers=auth_headers)
        assert [row["id"] for row in response.json()["items"]] == [flour.id]

    def test_shared_item_cannot_be_edited(self, client, auth_headers, shared_item):
        response = client.patch(f"{API}/items/{shared_item.id}", json={"name": "Sea salt"}, headers=auth_headers)
        assert response.status_code == 403

    def test_business_price_override(self, client, auth_headers, shared_item):
        response = client.patch(
            f"{API}/items/{shared_item.id}/price", json={"business_price": 3.25}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["business_price"] == 3.25
        assert response.json()["effective_price"] == 3.25
        assert response.json()["cost_per_unit"] == 2.0

        response = client.patch(
            f"{API}/items/{shared_item.id}/price", json={"business_price": None}, headers=auth_headers
        )
        assert response.json()["business_price"] is None
        assert response.json()["effective_price"] == 2.0

    def test_delete_deactivates(self, client, auth_headers, flour):
        response = client.delete(f"{API}/items/{flour.id}", headers=auth_headers)
        assert response.json() == {"deleted": True, "id": flour.id}
        assert client.get(f"{API}/items/{flour.id}", headers=auth_headers).json()["status"] == "inactive"

    def test_other_business_item_not_found(self, client, auth_headers, db_session):
        from silo.models.business import Business
        from silo.models.item import Item

        other = Business(name="Other")
        db_session.add(other)
        db_session.flush()
        item = Item(business_id=other.id, name="Secret sauce")
        db_session.add(item)
        db_session.commit()
        assert client.get(f"{API}/items/{item.id}", headers=auth_headers).status_code == 404

    def test_requires_authentication(self, client):
        assert client.get(f"{API}/items/").status_code == 401
