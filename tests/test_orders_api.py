from decimal import Decimal


def _items(*lines):
    return [{"productId": pid, "quantity": qty} for pid, qty in lines]


def test_create_order(client, world, auth, stock):
    protein = world.products["protein"]
    r = client.post("/orders", json={"items": _items((protein, 3)), "notes": "leave at desk"}, headers=auth("student"))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "pending_approval"
    assert Decimal(body["total_amount"]) == Decimal("30")
    assert body["order_number"].startswith("ORD-")
    assert body["metadata"] == {"notes": "leave at desk"}
    assert body["user"]["email"] == "student@irontemple.com"
    assert body["items"][0]["product"]["name"] == "Protein"
    assert body["items"][0]["product"]["category"]["name"] == "Supplements"
    assert stock(protein) == 2


def test_insufficient_stock_is_a_conflict(client, world, auth, stock):
    protein = world.products["protein"]
    r = client.post("/orders", json={"items": _items((protein, 6))}, headers=auth("student"))
    assert r.status_code == 409
    assert r.json()["detail"] == "Insufficient stock for Protein. Requested: 6, Available: 5"
    assert stock(protein) == 5


def test_student_ordering_for_another_user_is_forbidden(client, world, auth, order_count):
    r = client.post(
        "/orders",
        json={"userId": world.users["student2"], "items": _items((world.products["protein"], 1))},
        headers=auth("student"),
    )
    assert r.status_code == 403
    assert order_count() == 0


def test_validation_failures_are_400(client, world, auth):
    hdrs = auth("student")
    assert client.post("/orders", json={"items": []}, headers=hdrs).status_code == 400
    assert client.post("/orders", json={"items": _items((world.products["retired"], 1))}, headers=hdrs).status_code == 400
    assert client.post("/orders", json={"items": _items((world.products["shaker"], 0))}, headers=hdrs).status_code == 400


def test_malformed_body_is_422(client, world, auth):
    r = client.post("/orders", json={"items": [{"quantity": 1}]}, headers=auth("student"))
    assert r.status_code == 422


def test_requires_authentication(client, world):
    assert client.post("/orders", json={"items": []}).status_code == 401
    assert client.get("/orders", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_status_flow_and_cancellation(client, world, auth, stock):
    protein = world.products["protein"]
    order = client.post("/orders", json={"items": _items((protein, 2))}, headers=auth("student")).json()

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "prepared"}, headers=auth("trainer"))
    assert r.status_code == 200
    assert r.json()["status"] == "prepared"

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "cancelled", "metadata": {"reason": "no-show"}},
                     headers=auth("trainer"))
    assert r.status_code == 200
    assert r.json()["metadata"] == {"reason": "no-show"}
    assert stock(protein) == 5

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "cancelled"}, headers=auth("trainer"))
    assert r.status_code == 200
    assert stock(protein) == 5


def test_student_cannot_patch_status(client, world, auth):
    order = client.post("/orders", json={"items": _items((world.products["shaker"], 1))}, headers=auth("student")).json()
    r = client.patch(f"/orders/{order['id']}/status", json={"status": "completed"}, headers=auth("student"))
    assert r.status_code == 403


def test_bad_status_value(client, world, auth):
    order = client.post("/orders", json={"items": _items((world.products["shaker"], 1))}, headers=auth("student")).json()
    r = client.patch(f"/orders/{order['id']}/status", json={"status": "lost"}, headers=auth("trainer"))
    assert r.status_code == 400


def test_completed_order_cannot_be_cancelled(client, world, auth):
    order = client.post("/orders", json={"items": _items((world.products["shaker"], 1))}, headers=auth("student")).json()
    client.patch(f"/orders/{order['id']}/status", json={"status": "completed"}, headers=auth("trainer"))
    r = client.patch(f"/orders/{order['id']}/status", json={"status": "cancelled"}, headers=auth("trainer"))
    assert r.status_code == 409
    assert client.delete(f"/orders/{order['id']}", headers=auth("owner")).status_code == 400


def test_delete_cancels_and_hides_order(client, world, auth, stock):
    shaker = world.products["shaker"]
    order = client.post("/orders", json={"items": _items((shaker, 4))}, headers=auth("student")).json()
    assert stock(shaker) == 6

    r = client.delete(f"/orders/{order['id']}", headers=auth("student"))
    assert r.status_code == 204
    assert stock(shaker) == 10
    assert client.get(f"/orders/{order['id']}", headers=auth("owner")).status_code == 404


def test_list_orders_scoping_and_filters(client, world, auth, match):
    shaker = world.products["shaker"]
    match("student")
    match("student2")
    a = client.post("/orders", json={"items": _items((shaker, 1))}, headers=auth("student")).json()
    b = client.post("/orders", json={"items": _items((shaker, 1))}, headers=auth("student2")).json()
    client.patch(f"/orders/{b['id']}/status", json={"status": "prepared"}, headers=auth("trainer"))

    mine = client.get("/orders", headers=auth("student")).json()
    assert [o["id"] for o in mine["items"]] == [a["id"]]
    assert mine["pagination"]["total"] == 1

    everyone = client.get("/orders", headers=auth("trainer")).json()
    assert {o["id"] for o in everyone["items"]} == {a["id"], b["id"]}

    prepared = client.get("/orders", params={"status": "prepared"}, headers=auth("owner")).json()
    assert [o["id"] for o in prepared["items"]] == [b["id"]]

    by_user = client.get("/orders", params={"user_id": world.users["student"]}, headers=auth("owner")).json()
    assert [o["id"] for o in by_user["items"]] == [a["id"]]

    found = client.get("/orders", params={"search": "sven"}, headers=auth("owner")).json()
    assert [o["id"] for o in found["items"]] == [b["id"]]

    assert client.get("/orders", params={"status": "bogus"}, headers=auth("owner")).status_code == 400


def test_list_pagination(client, world, auth):
    shaker = world.products["shaker"]
    for _ in range(3):
        client.post("/orders", json={"items": _items((shaker, 1))}, headers=auth("student"))
    page = client.get("/orders", params={"page": 2, "limit": 2}, headers=auth("owner")).json()
    assert len(page["items"]) == 1
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}


def test_other_gym_cannot_see_orders(client, world, auth):
    order = client.post("/orders", json={"items": _items((world.products["shaker"], 1))}, headers=auth("student")).json()
    assert client.get(f"/orders/{order['id']}", headers=auth("outsider")).status_code == 404
    assert client.get("/orders", headers=auth("outsider")).json()["pagination"]["total"] == 0
    r = client.patch(f"/orders/{order['id']}/status", json={"status": "cancelled"}, headers=auth("outsider"))
    assert r.status_code == 404


def test_stats_endpoint(client, world, auth):
    protein = world.products["protein"]
    order = client.post("/orders", json={"items": _items((protein, 2))}, headers=auth("student")).json()
    client.patch(f"/orders/{order['id']}/status", json={"status": "completed"}, headers=auth("trainer"))

    stats = client.get("/orders/stats", headers=auth("owner")).json()
    assert stats["total_orders"] == 1
    assert stats["by_status"]["completed"] == 1
    assert Decimal(stats["total_revenue"]) == Decimal("20")


def test_trainer_lists_only_matched_students(client, world, auth, match):
    shaker = world.products["shaker"]
    match("student")
    match("student2", status="pending")
    a = client.post("/orders", json={"items": _items((shaker, 1))}, headers=auth("student")).json()
    client.post("/orders", json={"items": _items((shaker, 1))}, headers=auth("student2"))

    listing = client.get("/orders", headers=auth("trainer")).json()
    assert [o["id"] for o in listing["items"]] == [a["id"]]
    assert listing["pagination"]["total"] == 1

    own = client.get("/orders", params={"user_id": world.users["student"]}, headers=auth("trainer"))
    assert own.status_code == 200
    assert [o["id"] for o in own.json()["items"]] == [a["id"]]

    r = client.get("/orders", params={"user_id": world.users["student2"]}, headers=auth("trainer"))
    assert r.status_code == 403
    assert r.json()["detail"] == "You can only view orders of your students"

    # the owner is not limited by matches
    assert client.get("/orders", headers=auth("owner")).json()["pagination"]["total"] == 2


def test_trainer_without_students_sees_nothing(client, world, auth):
    client.post("/orders", json={"items": _items((world.products["shaker"], 1))}, headers=auth("student"))
    assert client.get("/orders", headers=auth("trainer")).json()["pagination"]["total"] == 0
