"""
HTTP tests for the /api routers.

Walks a table from session start to payment and checks how domain errors
surface as status codes.
"""

from tests.conftest import headers_for


def create_order(client, actor, table_id, *item_ids):
    response = client.post(
        "/api/orders",
        json={"table_id": table_id, "items": [{"item_id": i, "quantity": 1} for i in item_ids]},
        headers=headers_for(actor),
    )
    assert response.status_code == 201, response.text
    return response.json()


def serve_order(client, order_id, captain, chef):
    response = client.post(f"/api/orders/{order_id}/kot", headers=headers_for(captain))
    assert response.status_code == 201, response.text
    for ticket in response.json():
        assert client.patch(f"/api/kots/{ticket['id']}/ready", headers=headers_for(chef)).status_code == 200
        assert client.patch(f"/api/kots/{ticket['id']}/served", headers=headers_for(captain)).status_code == 200


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "ok"
        assert data["events"]["mode"] == "local"


class TestIdentity:

    def test_missing_headers(self, client, seed_tables):
        response = client.get("/api/tables")

        assert response.status_code == 401

    def test_unknown_role(self, client, seed_tables, captain):
        headers = headers_for(captain) | {"X-Actor-Role": "CHEF"}

        assert client.get("/api/tables", headers=headers).status_code == 401

    def test_other_outlet(self, client, seed_tables, foreign_captain):
        response = client.post(f"/api/tables/{seed_tables['T1'].id}/session", json={}, headers=headers_for(foreign_captain))

        assert response.status_code == 403


class TestTables:

    def test_list_by_floor(self, client, seed_tables, captain):
        response = client.get("/api/tables", params={"floor_id": 2}, headers=headers_for(captain))

        assert response.status_code == 200
        assert [t["table_number"] for t in response.json()] == ["T4"]

    def test_session_and_merge(self, client, seed_tables, captain, other_captain):
        t1, t2 = seed_tables["T1"].id, seed_tables["T2"].id

        started = client.post(f"/api/tables/{t1}/session", json={"guest_count": 5}, headers=headers_for(captain))
        assert started.status_code == 201
        assert started.json()["started_by"] == captain.actor_id

        again = client.post(f"/api/tables/{t1}/session", json={}, headers=headers_for(other_captain))
        assert again.status_code == 409

        merged = client.post(f"/api/tables/{t1}/merge", json={"table_ids": [t2]}, headers=headers_for(captain))
        assert merged.status_code == 201

        detail = client.get(f"/api/tables/{t1}", headers=headers_for(captain)).json()
        assert detail["table"]["capacity"] == 6
        assert detail["session"]["guest_count"] == 5
        assert [m["merged_table_id"] for m in detail["merges"]] == [t2]

        unmerged = client.post(f"/api/tables/{t1}/unmerge", headers=headers_for(captain))
        assert unmerged.status_code == 200

        ended = client.delete(f"/api/tables/{t1}/session", headers=headers_for(captain))
        assert ended.status_code == 200
        assert ended.json()["status"] == "completed"

    def test_manual_status_needs_manager(self, client, seed_tables, captain, manager):
        t3 = seed_tables["T3"].id

        denied = client.patch(f"/api/tables/{t3}/status", json={"status": "blocked"}, headers=headers_for(captain))
        assert denied.status_code == 403

        allowed = client.patch(f"/api/tables/{t3}/status", json={"status": "blocked"}, headers=headers_for(manager))
        assert allowed.status_code == 200
        assert allowed.json()["status"] == "blocked"

    def test_manual_status_rejects_lifecycle_state(self, client, seed_tables, manager):
        response = client.patch(
            f"/api/tables/{seed_tables['T3'].id}/status",
            json={"status": "billing"},
            headers=headers_for(manager),
        )

        assert response.status_code == 422


class TestOrderFlow:

    def test_dine_in_to_payment(self, client, seed_tables, seed_menu, captain, chef, cashier):
        table_id = seed_tables["T1"].id
        order = create_order(client, captain, table_id, seed_menu["paneer"].id, seed_menu["chai"].id)
        assert order["status"] == "confirmed"
        assert len(order["items"]) == 2

        serve_order(client, order["id"], captain, chef)
        assert client.get(f"/api/orders/{order['id']}", headers=headers_for(captain)).json()["status"] == "served"

        discount = client.post(
            f"/api/orders/{order['id']}/discount",
            json={"discount_type": "percentage", "value": 1000},
            headers=headers_for(captain),
        )
        assert discount.status_code == 201
        assert discount.json()["discount_cents"] == 3390

        bill = client.post(f"/api/orders/{order['id']}/bill", headers=headers_for(captain))
        assert bill.status_code == 201, bill.text
        invoice = bill.json()
        assert invoice["grand_total_cents"] == 35100
        assert invoice["balance_cents"] == 35100

        pending = client.get("/api/invoices/pending", headers=headers_for(cashier)).json()
        assert [i["id"] for i in pending] == [invoice["id"]]

        payment = client.post(
            "/api/payments",
            json={"invoice_id": invoice["id"], "order_id": order["id"], "mode": "upi", "amount_cents": 35100},
            headers=headers_for(cashier),
        )
        assert payment.status_code == 201, payment.text

        paid = client.get(f"/api/invoices/{invoice['id']}", headers=headers_for(cashier)).json()
        assert paid["payment_status"] == "paid"
        table = client.get(f"/api/tables/{table_id}", headers=headers_for(captain)).json()
        assert table["table"]["status"] == "available"
        assert table["session"] is None

    def test_split_payment_and_charges(self, client, seed_tables, seed_menu, captain, chef, cashier):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["paneer"].id, seed_menu["chai"].id)
        serve_order(client, order["id"], captain, chef)
        invoice = client.post(f"/api/orders/{order['id']}/bill", json={}, headers=headers_for(captain)).json()

        updated = client.put(
            f"/api/invoices/{invoice['id']}/charges",
            json={"remove_service_charge": True},
            headers=headers_for(cashier),
        )
        assert updated.status_code == 200
        assert updated.json()["grand_total_cents"] == 35600

        response = client.post(
            "/api/payments/split",
            json={
                "invoice_id": invoice["id"],
                "payments": [
                    {"mode": "cash", "amount_cents": 15600},
                    {"mode": "card", "amount_cents": 20000, "reference": "AUTH-1"},
                ],
            },
            headers=headers_for(cashier),
        )
        assert response.status_code == 201
        assert [p["mode"] for p in response.json()] == ["cash", "card"]

        frozen = client.put(
            f"/api/invoices/{invoice['id']}/charges",
            json={"remove_service_charge": False},
            headers=headers_for(cashier),
        )
        assert frozen.status_code == 409

    def test_session_lock_is_forbidden(self, client, seed_tables, seed_menu, captain, other_captain):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["chai"].id)

        response = client.post(
            f"/api/orders/{order['id']}/items",
            json={"items": [{"item_id": seed_menu["water"].id, "quantity": 1}]},
            headers=headers_for(other_captain),
        )

        assert response.status_code == 403

    def test_bill_before_served(self, client, seed_tables, seed_menu, captain):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["chai"].id)

        response = client.post(f"/api/orders/{order['id']}/bill", headers=headers_for(captain))

        assert response.status_code == 400

    def test_duplicate_code_conflict(self, client, seed_tables, seed_menu, seed_codes, captain):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["paneer"].id, seed_menu["chai"].id)
        url = f"/api/orders/{order['id']}/discount/code"

        assert client.post(url, json={"code": "save10"}, headers=headers_for(captain)).status_code == 201
        assert client.post(url, json={"code": "FLAT50"}, headers=headers_for(captain)).status_code == 409

        discounts = client.get(f"/api/orders/{order['id']}/discounts", headers=headers_for(captain)).json()
        assert [d["discount_code"] for d in discounts] == ["SAVE10"]

    def test_cancel_item_and_order(self, client, seed_tables, seed_menu, captain):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["paneer"].id, seed_menu["chai"].id)
        item_id = order["items"][0]["id"]

        item = client.post(
            f"/api/orders/{order['id']}/items/{item_id}/cancel",
            json={"reason": "out of stock"},
            headers=headers_for(captain),
        )
        assert item.status_code == 200
        assert item.json()["status"] == "cancelled"

        cancelled = client.post(
            f"/api/orders/{order['id']}/cancel",
            json={"reason": "guest left"},
            headers=headers_for(captain),
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert client.get("/api/orders", headers=headers_for(captain)).json() == []

    def test_quantity_transfer_and_history(self, client, seed_tables, seed_menu, captain):
        t1, t3 = seed_tables["T1"].id, seed_tables["T3"].id
        order = create_order(client, captain, t1, seed_menu["chai"].id)
        item_id = order["items"][0]["id"]

        changed = client.patch(
            f"/api/orders/{order['id']}/items/{item_id}",
            json={"quantity": 3},
            headers=headers_for(captain),
        )
        assert changed.status_code == 200
        assert changed.json()["total_price_cents"] == 3 * 9900

        assert client.post(f"/api/orders/{order['id']}/kot", headers=headers_for(captain)).status_code == 201
        sent = client.patch(
            f"/api/orders/{order['id']}/items/{item_id}",
            json={"quantity": 1},
            headers=headers_for(captain),
        )
        assert sent.status_code == 400

        moved = client.post(
            f"/api/orders/{order['id']}/transfer",
            json={"to_table_id": t3},
            headers=headers_for(captain),
        )
        assert moved.status_code == 200
        assert moved.json()["table_id"] == t3
        same_table = client.post(
            f"/api/orders/{order['id']}/transfer",
            json={"to_table_id": t3},
            headers=headers_for(captain),
        )
        assert same_table.status_code == 400

        transfers = client.get(f"/api/orders/{order['id']}/transfers", headers=headers_for(captain)).json()
        assert [(t["from_table_id"], t["to_table_id"]) for t in transfers] == [(t1, t3)]

        history = client.get(f"/api/tables/{t3}/history", headers=headers_for(captain))
        assert history.status_code == 200
        assert [(h["event_type"], h["to_status"]) for h in history.json()] == [("transferred_in", "running")]
        assert client.get(f"/api/tables/{t3}/history", params={"limit": 0}, headers=headers_for(captain)).status_code == 422

    def test_unknown_order(self, client, captain):
        assert client.get("/api/orders/999", headers=headers_for(captain)).status_code == 404


class TestKitchen:

    def test_station_queue_and_roles(self, client, seed_tables, seed_menu, captain, chef):
        order = create_order(client, captain, seed_tables["T1"].id, seed_menu["paneer"].id, seed_menu["chai"].id)
        client.post(f"/api/orders/{order['id']}/kot", headers=headers_for(captain))

        queue = client.get("/api/kots", params={"station": "kitchen"}, headers=headers_for(chef)).json()
        assert [t["station"] for t in queue] == ["kitchen"]
        kot_id = queue[0]["id"]

        assert client.patch(f"/api/kots/{kot_id}/accept", headers=headers_for(captain)).status_code == 403
        accepted = client.patch(f"/api/kots/{kot_id}/accept", headers=headers_for(chef))
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        assert client.patch(f"/api/kots/{kot_id}/served", headers=headers_for(chef)).status_code == 400
