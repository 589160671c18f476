"""Vendor and purchase order template tests."""

import pytest

API = "/api/v1"


class TestVendors:
    def test_create_generates_code_and_defaults(self, client, auth_headers):
        response = client.post(f"{API}/vendors/", json={"name": "  Gulf Produce  "}, headers=auth_headers)
        assert response.status_code == 201, response.text
        vendor = response.json()
        assert vendor["name"] == "Gulf Produce"
        assert vendor["code"] == "VND-0001"
        assert vendor["country"] == "Saudi Arabia"
        assert vendor["payment_terms"] == 30
        assert vendor["status"] == "active"

    def test_codes_are_sequential(self, client, auth_headers, vendor):
        response = client.post(f"{API}/vendors/", json={"name": "Second"}, headers=auth_headers)
        assert response.json()["code"] == "VND-0002"

    def test_blank_name_rejected(self, client, auth_headers):
        response = client.post(f"{API}/vendors/", json={"name": "   "}, headers=auth_headers)
        assert response.status_code == 422

    def test_duplicate_code_rejected(self, client, auth_headers, vendor):
        response = client.post(
            f"{API}/vendors/", json={"name": "Copy", "code": vendor.code}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_invalid_email_rejected(self, client, auth_headers):
        response = client.post(
            f"{API}/vendors/", json={"name": "Mail", "email": "not-an-email"}, headers=auth_headers
        )
        assert response.status_code == 422

    def test_search(self, client, auth_headers, vendor):
        client.post(f"{API}/vendors/", json={"name": "Bakery Supplies"}, headers=auth_headers)
        response = client.get(f"{API}/vendors/?search=fresh", headers=auth_headers)
        assert [v["id"] for v in response.json()["items"]] == [vendor.id]

    def test_update_keeps_unset_fields(self, client, auth_headers, vendor):
        response = client.patch(
            f"{API}/vendors/{vendor.id}",
            json={"phone": "+966500000000", "name": None},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["phone"] == "+966500000000"
        assert response.json()["name"] == "Fresh Foods Co"

    def test_delete_without_orders_is_hard(self, client, auth_headers, vendor):
        response = client.delete(f"{API}/vendors/{vendor.id}", headers=auth_headers)
        assert response.json() == {"deleted": True, "soft": False}
        assert client.get(f"{API}/vendors/{vendor.id}", headers=auth_headers).status_code == 404

    def test_delete_with_orders_deactivates(self, client, auth_headers, vendor, eggs):
        client.post(
            f"{API}/purchase-orders/",
            json={"vendor_id": vendor.id, "items": [{"item_id": eggs.id, "quantity": 1}]},
            headers=auth_headers,
        )
        response = client.delete(f"{API}/vendors/{vendor.id}", headers=auth_headers)
        assert response.json()["soft"] is True
        assert client.get(f"{API}/vendors/{vendor.id}", headers=auth_headers).json()["status"] == "inactive"

    def test_employee_cannot_manage_vendors(self, client, headers_for, employee, main_branch):
        response = client.post(
            f"{API}/vendors/", json={"name": "Nope"}, headers=headers_for(employee, main_branch)
        )
        assert response.status_code == 403

    def test_branch_vendor_hidden_from_other_branches(
        self, client, auth_headers, headers_for, owner, second_branch, vendor, eggs,
    ):
        downtown = headers_for(owner, second_branch)
        local = client.post(
            f"{API}/vendors/",
            json={"name": "Downtown Dairy", "branch_id": second_branch.id},
            headers=auth_headers,
        ).json()

        main_ids = [v["id"] for v in client.get(f"{API}/vendors/", headers=auth_headers).json()["items"]]
        downtown_ids = [v["id"] for v in client.get(f"{API}/vendors/", headers=downtown).json()["items"]]
        assert local["id"] not in main_ids
        assert vendor.id in main_ids
        assert set(downtown_ids) == {vendor.id, local["id"]}

        order = {"vendor_id": local["id"], "items": [{"item_id": eggs.id, "quantity": 1}]}
        response = client.post(f"{API}/purchase-orders/", json=order, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Vendor is not available for this branch"
        assert client.post(f"{API}/purchase-orders/", json=order, headers=downtown).status_code == 201

    def test_vendor_branch_must_belong_to_business(self, client, auth_headers):
        response = client.post(
            f"{API}/vendors/", json={"name": "Elsewhere", "branch_id": 9999}, headers=auth_headers
        )
        assert response.status_code == 400


class TestPOTemplates:
    @pytest.fixture
    def template(self, client, auth_headers, vendor, eggs, flour):
        response = client.post(
            f"{API}/po-templates/",
            json={
                "name": "Weekly dry goods",
                "vendor_id": vendor.id,
                "items": [{"item_id": eggs.id, "quantity": 30}, {"item_id": flour.id, "quantity": 25}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    def test_create_order_from_template(self, client, auth_headers, template):
        response = client.post(f"{API}/po-templates/{template['id']}/create-order", headers=auth_headers)
        assert response.status_code == 201, response.text
        po = response.json()
        assert po["status"] == "pending"
        assert sorted(line["quantity"] for line in po["items"]) == [25.0, 30.0]

    def test_template_from_order(self, client, auth_headers, vendor, eggs):
        po = client.post(
            f"{API}/purchase-orders/",
            json={"vendor_id": vendor.id, "items": [{"item_id": eggs.id, "quantity": 12}]},
            headers=auth_headers,
        ).json()
        response = client.post(
            f"{API}/po-templates/from-order/{po['id']}", json={"name": "Eggs only"}, headers=auth_headers
        )
        assert response.status_code == 201
        assert [line["item_id"] for line in response.json()["items"]] == [eggs.id]

    def test_deleted_template_is_hidden(self, client, auth_headers, template):
        client.delete(f"{API}/po-templates/{template['id']}", headers=auth_headers)
        assert client.get(f"{API}/po-templates/{template['id']}", headers=auth_headers).status_code == 404
