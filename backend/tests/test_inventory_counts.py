"""Inventory count (stocktake) workflow tests."""

import pytest

API = "/api/v1"


@pytest.fixture
def open_count(client, auth_headers):
    def create(**body):
        response = client.post(f"{API}/inventory-counts/", json=body, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()
    return create


def _line(count, item):
    return next(line for line in count["items"] if line["item_id"] == item.id)


class TestCreateCount:
    def test_full_count_snapshots_every_raw_item(self, open_count, flour, eggs, dough, add_stock):
        add_stock(flour, 10)
        count = open_count()
        assert count["status"] == "draft"
        assert count["count_number"].startswith("CNT-")
        assert {line["item_id"] for line in count["items"]} == {flour.id, eggs.id}
        assert _line(count, flour)["expected_quantity"] == 10.0
        assert count["summary"]["total_items"] == 2

    def test_partial_count_requires_items(self, client, auth_headers, flour):
        response = client.post(
            f"{API}/inventory-counts/", json={"count_type": "partial"}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_partial_count_selected_items(self, open_count, flour, eggs):
        count = open_count(count_type="partial", item_ids=[eggs.id])
        assert [line["item_id"] for line in count["items"]] == [eggs.id]


class TestCountWorkflow:
    def test_complete_posts_variance(self, client, auth_headers, open_count, flour, eggs, add_stock):
        add_stock(flour, 10)
        count = open_count()

        response = client.patch(
            f"{API}/inventory-counts/{count['id']}/items/{flour.id}",
            json={"counted_quantity": 8, "variance_reason": "Spillage"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "in_progress"
        assert _line(data, flour)["variance"] == -2.0

        client.patch(
            f"{API}/inventory-counts/{count['id']}/items/{eggs.id}",
            json={"counted_quantity": 0},
            headers=auth_headers,
        )
        assert client.post(
            f"{API}/inventory-counts/{count['id']}/submit", headers=auth_headers
        ).json()["status"] == "pending_review"

        response = client.post(f"{API}/inventory-counts/{count['id']}/complete", headers=auth_headers)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "completed"
        assert response.json()["summary"]["items_with_variance"] == 1

        stock = client.get(f"{API}/stock/{flour.id}", headers=auth_headers).json()
        assert stock["quantity"] == 8.0
        assert stock["last_count_quantity"] == 8.0

        timeline = client.get(
            f"{API}/inventory/timeline/?reference_type=inventory_count", headers=auth_headers
        ).json()
        assert [row["item_id"] for row in timeline["transactions"]] == [flour.id]

    def test_adjustment_uses_stock_at_completion(self, client, auth_headers, open_count, flour, add_stock):
        add_stock(flour, 10)
        count = open_count(count_type="partial", item_ids=[flour.id])
        add_stock(flour, 5)  # delivery while counting
        client.patch(
            f"{API}/inventory-counts/{count['id']}/items/{flour.id}",
            json={"counted_quantity": 12},
            headers=auth_headers,
        )
        client.post(f"{API}/inventory-counts/{count['id']}/complete", headers=auth_headers)
        assert client.get(f"{API}/stock/{flour.id}", headers=auth_headers).json()["quantity"] == 12.0

    def test_uncounted_items_block_completion(self, client, auth_headers, open_count, flour, eggs):
        count = open_count()
        client.post(f"{API}/inventory-counts/{count['id']}/start", headers=auth_headers)
        response = client.post(f"{API}/inventory-counts/{count['id']}/complete", headers=auth_headers)
        assert response.status_code == 400
        assert "have not been counted" in response.json()["detail"]

    def test_cancelled_count_is_closed(self, client, auth_headers, open_count, flour):
        count = open_count(count_type="cycle", item_ids=[flour.id])
        assert client.post(
            f"{API}/inventory-counts/{count['id']}/cancel", headers=auth_headers
        ).json()["status"] == "cancelled"
        response = client.patch(
            f"{API}/inventory-counts/{count['id']}/items/{flour.id}",
            json={"counted_quantity": 1},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_employee_cannot_complete(self, client, headers_for, employee, main_branch, open_count, flour):
        count = open_count(count_type="partial", item_ids=[flour.id])
        response = client.post(
            f"{API}/inventory-counts/{count['id']}/complete", headers=headers_for(employee, main_branch)
        )
        assert response.status_code == 403

    def test_list_by_status(self, client, auth_headers, open_count, flour):
        count = open_count(count_type="partial", item_ids=[flour.id])
        response = client.get(f"{API}/inventory-counts/?status=draft", headers=auth_headers)
        assert [c["id"] for c in response.json()["items"]] == [count["id"]]
