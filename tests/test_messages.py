def send(client, sender, to, text):
    return client.post("/messages", json={"to_id": to["id"], "message": text}, headers=sender["headers"])


def test_send_message_notifies_recipient(client, vendor, supplier):
    resp = send(client, vendor, supplier, "Do you have onions in stock today?")
    assert resp.status_code == 200
    message = resp.json()
    assert message["from_name"] == "Raju Chaat Corner"
    assert message["to_name"] == "Ravi Vegetable Mart"
    assert message["read"] is False

    (note,) = client.get("/notifications", headers=supplier["headers"]).json()
    assert note["title"] == "New Message"
    assert note["message"] == "New message from Raju Chaat Corner"
    assert client.get("/notifications", headers=vendor["headers"]).json() == []


def test_mailbox_lists_sent_and_received(client, vendor, supplier, other_supplier):
    send(client, vendor, supplier, "first")
    send(client, supplier, vendor, "second")
    send(client, vendor, other_supplier, "third")
    send(client, supplier, other_supplier, "not mine")

    texts = [m["message"] for m in client.get("/messages", headers=vendor["headers"]).json()]
    assert texts == ["first", "second", "third"]

    resp = client.get("/messages", params={"with_user": supplier["id"]}, headers=vendor["headers"])
    assert [m["message"] for m in resp.json()] == ["first", "second"]


def test_only_recipient_marks_read(client, vendor, supplier):
    message_id = send(client, vendor, supplier, "hello").json()["id"]

    assert client.post(f"/messages/{message_id}/read", headers=vendor["headers"]).status_code == 403
    assert client.post(f"/messages/{message_id}/read", headers=supplier["headers"]).status_code == 200

    (message,) = client.get("/messages", headers=supplier["headers"]).json()
    assert message["read"] is True


def test_message_validation(client, vendor):
    resp = client.post("/messages", json={"to_id": vendor["id"], "message": "me"}, headers=vendor["headers"])
    assert resp.status_code == 400
    assert resp.json()["code"] == "message.self"

    resp = client.post(
        "/messages", json={"to_id": "64b7f0c2a1b2c3d4e5f60718", "message": "hi"}, headers=vendor["headers"]
    )
    assert resp.status_code == 404

    resp = client.post("/messages", json={"to_id": "64b7f0c2a1b2c3d4e5f60718", "message": ""}, headers=vendor["headers"])
    assert resp.status_code == 422
