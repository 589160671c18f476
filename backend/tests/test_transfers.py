"""Inventory transfer tests: stock leaves on send, arrives on receive, returns on cancel."""

import pytest

API = "/api/v1"


@pytest.fixture
def main_headers(auth_headers):
    return auth_headers


@pytest.fixture
def second_headers(headers_for, owner, second_branch):
    return headers_for(owner, second_branch)


@pytest.fixture
def send(client, main_headers, main_branch, second_branch):
    def create(item, quantity, headers=None):
        return client.post(
            f"{API}/transfers/",
            json={
                "from_branch_id": main_branch.id,
                "to_branch_id": second_branch.id,
                "items": [{"item_id": item.id, "quantity": str(quantity)}],
                "notes": "Weekend restock",
            },
            headers=headers or main_headers,
        )
    return create


def _quantity(client, item, headers):
    return client.get(f"{API}/stock/{item.id}", headers=headers).json()["quantity"]


class TestCreateTransfer:
    def test_stock_leaves_source_immediately(self, client, send, main_headers, second_headers, flour, add_stock):
        add_stock(flour, 10)
        response = send(flour, 4)
        assert response.status_code == 201, response.text
        transfer = response.json()
        assert transfer["status"] == "pending"
        assert transfer["transfer_number"].startswith("TRF-")
        assert transfer["from_branch_name"] == "Main"
        assert transfer["to_branch_name"] == "Downtown"
        assert _quantity(client, flour, main_headers) == 6.0
        assert _quantity(client, flour, second_headers) == 0.0

    def test_same_branch_rejected(self, client, main_headers, main_branch, flour, add_stock):
        add_stock(flour, 10)
        response = client.post(
            f"{API}/transfers/",
            json={
                "from_branch_id": main_branch.id,
                "to_branch_id": main_branch.id,
                "items": [{"item_id": flour.id, "quantity": 1}],
            },
            headers=main_headers,
        )
        assert response.status_code == 400

    def test_insufficient_stock_rejected(self, client, send, main_headers, flour, add_stock):
        add_stock(flour, 1)
        response = send(flour, 5)
        assert response.status_code == 400
        assert "Insufficient stock" in response.json()["detail"]
        assert _quantity(client, flour, main_headers) == 1.0

    def test_unknown_destination_branch(self, client, main_headers, main_branch, flour, add_stock):
        add_stock(flour, 1)
        response = client.post(
            f"{API}/transfers/",
            json={
                "from_branch_id": main_branch.id,
                "to_branch_id": 9999,
                "items": [{"item_id": flour.id, "quantity": 1}],
            },
            headers=main_headers,
        )
        assert response.status_code == 404


class TestReceiveTransfer:
    def test_destination_receives_full_quantity(self, client, send, second_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(f"{API}/transfers/{transfer['id']}/receive", headers=second_headers)
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "received"
        assert data["items"][0]["received_quantity"] == 4.0
        assert _quantity(client, flour, second_headers) == 4.0

    def test_partial_receive(self, client, send, second_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(
            f"{API}/transfers/{transfer['id']}/receive",
            json={"items": [{"item_id": flour.id, "received_quantity": 3}], "notes": "One bag torn"},
            headers=second_headers,
        )
        assert response.status_code == 200
        assert _quantity(client, flour, second_headers) == 3.0

    def test_cannot_receive_more_than_sent(self, client, send, second_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(
            f"{API}/transfers/{transfer['id']}/receive",
            json={"items": [{"item_id": flour.id, "received_quantity": 5}]},
            headers=second_headers,
        )
        assert response.status_code == 400

    def test_source_branch_cannot_receive(self, client, send, main_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(f"{API}/transfers/{transfer['id']}/receive", headers=main_headers)
        assert response.status_code == 403


class TestCancelTransfer:
    def test_cancel_returns_stock(self, client, send, main_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(
            f"{API}/transfers/{transfer['id']}/cancel",
            json={"reason": "Truck unavailable"},
            headers=main_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancel_reason"] == "Truck unavailable"
        assert _quantity(client, flour, main_headers) == 10.0

    def test_destination_cannot_cancel(self, client, send, second_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        response = client.post(f"{API}/transfers/{transfer['id']}/cancel", headers=second_headers)
        assert response.status_code == 403

    def test_received_transfer_cannot_be_cancelled(
        self, client, send, main_headers, second_headers, flour, add_stock,
    ):
        add_stock(flour, 10)
        transfer = send(flour, 4).json()
        client.post(f"{API}/transfers/{transfer['id']}/receive", headers=second_headers)
        response = client.post(f"{API}/transfers/{transfer['id']}/cancel", headers=main_headers)
        assert response.status_code == 400


class TestListTransfers:
    def test_direction_filter(self, client, send, main_headers, second_headers, flour, add_stock):
        add_stock(flour, 10)
        transfer = send(flour, 1).json()

        outgoing = client.get(f"{API}/transfers/?direction=outgoing", headers=main_headers).json()
        incoming = client.get(f"{API}/transfers/?direction=incoming", headers=main_headers).json()
        assert [t["id"] for t in outgoing["items"]] == [transfer["id"]]
        assert incoming["items"] == []

        incoming = client.get(f"{API}/transfers/?direction=incoming&status=pending", headers=second_headers).json()
        assert [t["id"] for t in incoming["items"]] == [transfer["id"]]

    def test_destinations(self, client, main_headers, business):
        response = client.get(f"{API}/transfers/destinations", headers=main_headers)
        assert response.status_code == 200
        destinations = response.json()["destinations"]
        assert destinations[0]["business_id"] == business.id
        assert [b["name"] for b in destinations[0]["branches"]] == ["Main", "Downtown"]


class TestCrossBusinessTransfer:
    @pytest.fixture
    def sister(self, db_session, owner):
        """A second business owned by the same owner."""
        from silo.models.business import Branch, Business

        sister = Business(name="Sister Kitchen", owner_id=owner.id)
        db_session.add(sister)
        db_session.flush()
        db_session.add(Branch(business_id=sister.id, name="Harbour", is_main=True))
        db_session.commit()
        db_session.refresh(sister)
        return sister

    def _payload(self, main_branch, sister, item, quantity):
        return {
            "from_branch_id": main_branch.id,
            "to_business_id": sister.id,
            "to_branch_id": sister.branches[0].id,
            "items": [{"item_id": item.id, "quantity": quantity}],
        }

    def test_owner_moves_stock_between_own_businesses(
        self, client, main_headers, headers_for, owner, main_branch, sister, shared_item, add_stock,
    ):
        add_stock(shared_item, 10)
        response = client.post(
            f"{API}/transfers/", json=self._payload(main_branch, sister, shared_item, 4), headers=main_headers
        )
        assert response.status_code == 201, response.text
        transfer = response.json()
        assert transfer["to_business_id"] == sister.id
        assert _quantity(client, shared_item, main_headers) == 6.0

        harbour = headers_for(owner, sister.branches[0], sister)
        response = client.post(f"{API}/transfers/{transfer['id']}/receive", headers=harbour)
        assert response.status_code == 200, response.text
        assert _quantity(client, shared_item, harbour) == 4.0

    def test_non_owner_cannot_send_to_another_business(
        self, client, headers_for, manager, main_branch, sister, shared_item, add_stock,
    ):
        add_stock(shared_item, 10)
        response = client.post(
            f"{API}/transfers/",
            json=self._payload(main_branch, sister, shared_item, 1),
            headers=headers_for(manager, main_branch),
        )
        assert response.status_code == 403
