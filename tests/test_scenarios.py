"""
End-to-end walk through a dining session.
"""

from decimal import Decimal


def test_order_lifecycle(client, table, biryani):
    assert client.get("/tables/1").json()["status"] == "free"

    registered = client.post("/device-sessions", json={"table_id": 1, "device_id": "D1"})
    assert registered.status_code == 201

    response = client.post(
        "/orders",
        json={
            "table_id": 1,
            "device_id": "D1",
            "items": [{"menu_item_id": str(biryani.id), "quantity": 1}],
        },
    )
    assert response.status_code == 201
    order = response.json()
    assert Decimal(order["total_amount"]) == Decimal("250.00")
    assert order["max_prep_time"] == 25
    assert order["status"] == "pending"

    for status in ("preparing", "order is ready"):
        updated = client.patch(f"/orders/{order['id']}/status", json={"status": status})
        assert updated.status_code == 200
        assert updated.json()["status"] == status


def test_bill_request_is_served_once(client, table):
    created = client.post(
        "/customer-requests",
        json={"table_id": 1, "request_type": "bill", "amount": "250.00"},
    ).json()

    served = client.post(f"/customer-requests/{created['id']}/serve").json()
    assert served["is_served"] is True
    assert served["served_at"] is not None

    again = client.post(f"/customer-requests/{created['id']}/serve").json()
    assert again["is_served"] is True
    assert again["served_at"] == served["served_at"]


def test_profiles_follow_email_domain(client, access_headers):
    manager = client.post("/auth/identities", json={"email": "a@manager.com"}, headers=access_headers)
    stranger = client.post("/auth/identities", json={"email": "b@unknown.com"}, headers=access_headers)

    assert manager.json()["profile"]["role"] == "manager"
    assert stranger.json()["profile"]["role"] == "servant"
