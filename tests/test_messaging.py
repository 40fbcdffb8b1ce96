from conftest import add_user, register


def send(client, headers, recipient_id, body="Truck 3 needs a tire check"):
    return client.post("/messages", json={"recipient_id": recipient_id, "body": body}, headers=headers)


def test_send_read_and_unread_count(client, admin_headers):
    tech_headers, tech = add_user(client, admin_headers, "tech")

    resp = send(client, admin_headers, tech["id"])
    assert resp.status_code == 201
    message = resp.json()
    assert message["is_read"] is False
    assert message["recipient_name"]

    assert client.get("/messages/unread-count", headers=tech_headers).json() == {"unread_count": 1}
    inbox = client.get("/messages", headers=tech_headers).json()
    assert [m["id"] for m in inbox] == [message["id"]]
    sent = client.get("/messages", params={"box": "sent"}, headers=admin_headers).json()
    assert [m["id"] for m in sent] == [message["id"]]

    # Only the recipient can mark it read
    assert client.post(f"/messages/{message['id']}/read", headers=admin_headers).status_code == 404
    read = client.post(f"/messages/{message['id']}/read", headers=tech_headers).json()
    assert read["is_read"] is True
    assert read["read_at"] is not None
    assert client.get("/messages/unread-count", headers=tech_headers).json() == {"unread_count": 0}


def test_cannot_message_self_or_other_organizations(client, admin):
    headers, user = admin
    _, outsider = register(client, organization_name="Elsewhere", username="outsider")

    assert send(client, headers, user["id"]).status_code == 400
    assert send(client, headers, outsider["id"]).status_code == 404


def test_empty_body_rejected(client, admin_headers):
    _, tech = add_user(client, admin_headers, "tech")
    assert send(client, admin_headers, tech["id"], body="").status_code == 422


def test_delete_hides_message_per_side(client, admin_headers):
    tech_headers, tech = add_user(client, admin_headers, "tech")
    message = send(client, admin_headers, tech["id"]).json()

    assert client.delete(f"/messages/{message['id']}", headers=tech_headers).status_code == 204
    assert client.get("/messages", headers=tech_headers).json() == []
    # Sender still has it
    assert len(client.get("/messages", params={"box": "sent"}, headers=admin_headers).json()) == 1


def test_broadcast_requires_user_management(client, admin_headers):
    tech_headers, _ = add_user(client, admin_headers, "tech1")
    add_user(client, admin_headers, "tech2")

    assert client.post("/messages/broadcast", json={"body": "Hi"}, headers=tech_headers).status_code == 403

    resp = client.post(
        "/messages/broadcast", json={"subject": "Safety", "body": "Wear gloves today"}, headers=admin_headers
    )
    assert resp.status_code == 201
    assert resp.json()["recipients"] == 2
    assert client.get("/messages/unread-count", headers=tech_headers).json() == {"unread_count": 1}


def test_notifications_read_all(client, admin_headers, customer):
    invoice = client.post(
        "/invoices",
        json={"customer_id": customer["id"], "line_items": [{"description": "Visit", "quantity": 1, "rate": 80}]},
        headers=admin_headers,
    ).json()
    client.post(f"/invoices/{invoice['id']}/mark-paid", headers=admin_headers)

    unread = client.get("/notifications", params={"unread_only": True}, headers=admin_headers).json()
    assert len(unread) == 1

    resp = client.post("/notifications/read-all", headers=admin_headers)
    assert resp.json()["updated"] == 1
    assert client.get("/notifications", params={"unread_only": True}, headers=admin_headers).json() == []
