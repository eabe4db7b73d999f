from decimal import Decimal

from conftest import auth, listing_payload
from donation_market import main
from donation_market.errors import ServerError


def _create_listing(client, user, **overrides):
    response = client.post("/listings", json=listing_payload(**overrides), headers=auth(user))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_listing_requires_identity(client):
    response = client.post("/listings", json=listing_payload())
    assert response.status_code == 401

    response = client.post("/listings", json=listing_payload(), headers={"X-User-Id": "999"})
    assert response.status_code == 401


def test_create_listing(client, users):
    data = _create_listing(client, users["owner"])
    assert data["owner_id"] == users["owner"].id
    assert Decimal(data["estimated_value"]) == Decimal("150.00")
    assert data["is_approved"] is False
    assert data["status"] == "available"


def test_create_listing_rule_violation_is_400(client, users):
    response = client.post(
        "/listings", json=listing_payload(image_urls=["one.jpg"]), headers=auth(users["owner"])
    )
    assert response.status_code == 400
    assert "photos" in response.json()["detail"]


def test_listing_visibility_and_approval_flow(client, users):
    owner, other, admin = users["owner"], users["other"], users["admin"]
    listing = _create_listing(client, owner)
    url = f"/listings/{listing['id']}"

    assert client.get(url).status_code == 404
    assert client.get(url, headers=auth(other)).status_code == 404
    assert client.get(url, headers=auth(owner)).status_code == 200

    pending = client.get("/admin/listings/pending", headers=auth(admin)).json()
    assert [l["id"] for l in pending] == [listing["id"]]
    assert client.get("/admin/listings/pending", headers=auth(owner)).status_code == 403

    response = client.put(f"/admin/listings/{listing['id']}/approval", headers=auth(admin))
    assert response.status_code == 200
    assert response.json()["is_approved"] is True
    assert response.json()["approved_at"] is not None

    assert client.get(url).status_code == 200
    browse = client.get("/listings").json()
    assert browse["total"] == 1
    assert browse["listings"][0]["id"] == listing["id"]

    response = client.put(
        f"/admin/listings/{listing['id']}/approval", json={"is_approved": False}, headers=auth(admin)
    )
    assert response.json()["is_approved"] is False
    assert response.json()["approved_at"] is None


def test_update_and_delete_listing(client, users):
    owner, other = users["owner"], users["other"]
    listing = _create_listing(client, owner)
    url = f"/listings/{listing['id']}"

    assert client.put(url, json={"title": "Hijack"}, headers=auth(other)).status_code == 403
    assert client.put("/listings/999", json={"title": "x"}, headers=auth(owner)).status_code == 404

    response = client.put(url, json={"status": "donated", "recipient_id": other.id}, headers=auth(owner))
    assert response.status_code == 200
    assert response.json()["recipient_id"] == other.id
    assert response.json()["donated_at"] is not None

    mine = client.get("/listings/mine", headers=auth(owner)).json()
    assert [l["id"] for l in mine] == [listing["id"]]

    response = client.delete(url, headers=auth(owner))
    assert response.status_code == 200
    assert response.json() == {"message": "Listing deleted successfully"}
    assert client.get(url, headers=auth(owner)).status_code == 404


def test_browse_rejects_bad_sort(client):
    assert client.get("/listings", params={"sort": "random"}).status_code == 400


def test_messaging_flow(client, users):
    owner, other = users["owner"], users["other"]
    listing = _create_listing(client, owner)

    response = client.post(
        "/messages",
        json={"recipient_id": owner.id, "content": "Still available?", "listing_id": str(listing["id"])},
        headers=auth(other),
    )
    assert response.status_code == 201
    assert response.json()["listing_id"] == listing["id"]

    response = client.post(
        "/messages", json={"recipient_id": owner.id, "content": "Hi!", "listing_id": "undefined"}, headers=auth(other)
    )
    assert response.status_code == 201
    assert response.json()["listing_id"] is None

    assert client.post("/messages", json={"recipient_id": owner.id}, headers=auth(other)).status_code == 400

    assert client.get("/messages/unread-count", headers=auth(owner)).json() == {"count": 2}

    inbox = client.get("/messages/inbox", headers=auth(owner)).json()
    assert [row["scope_label"] for row in inbox] == ["General", "Oak dining table"]

    thread = client.get(
        "/messages/thread",
        params={"counterparty_id": other.id, "listing_id": listing["id"]},
        headers=auth(owner),
    ).json()
    assert [m["content"] for m in thread] == ["Still available?"]

    response = client.put(
        "/messages/read", json={"counterparty_id": other.id, "listing_id": listing["id"]}, headers=auth(owner)
    )
    assert response.json() == {"success": True, "updated": 1}
    assert client.get("/messages/unread-count", headers=auth(owner)).json() == {"count": 1}


def test_receipt_total(client, users, monkeypatch):
    monkeypatch.setattr(main.receipt_reader, "extract_total", lambda urls: Decimal("89.99"))
    response = client.post("/receipts/total", json={"receipt_urls": ["r.jpg"]}, headers=auth(users["owner"]))
    assert response.status_code == 200
    assert Decimal(response.json()["price"]) == Decimal("89.99")

    monkeypatch.setattr(main.receipt_reader, "extract_total", lambda urls: None)
    response = client.post("/receipts/total", json={"receipt_urls": ["r.jpg"]}, headers=auth(users["owner"]))
    assert response.status_code == 404


def test_receipt_reader_failure_is_500(client, users, monkeypatch):
    def broken(urls):
        raise ServerError("Failed to get a valid response from the receipt reader after multiple retries.")

    monkeypatch.setattr(main.receipt_reader, "extract_total", broken)
    response = client.post("/receipts/total", json={"receipt_urls": ["r.jpg"]}, headers=auth(users["owner"]))
    assert response.status_code == 500
    assert "multiple retries" in response.text


def test_reports_flow(client, users):
    owner, other, admin = users["owner"], users["other"], users["admin"]
    response = client.post(
        "/reports", json={"reason": "Spam", "target_user_id": owner.id}, headers=auth(other)
    )
    assert response.status_code == 201
    report_id = response.json()["id"]

    assert client.get("/admin/reports", headers=auth(other)).status_code == 403
    assert len(client.get("/admin/reports", headers=auth(admin)).json()) == 1

    response = client.put(f"/admin/reports/{report_id}", json={"status": "resolved"}, headers=auth(admin))
    assert response.json()["status"] == "resolved"

    response = client.put(f"/admin/reports/{report_id}", json={"status": "archived"}, headers=auth(admin))
    assert response.status_code == 422


def test_non_ascii_digits_are_rejected_cleanly(client, users):
    owner, other = users["owner"], users["other"]

    response = client.get(
        "/messages/thread", params={"counterparty_id": other.id, "listing_id": "²"}, headers=auth(owner)
    )
    assert response.status_code == 400

    response = client.put(
        "/messages/read", json={"counterparty_id": other.id, "listing_id": "²"}, headers=auth(owner)
    )
    assert response.status_code == 400

    response = client.post(
        "/messages", json={"recipient_id": other.id, "content": "hi", "listing_id": "²"}, headers=auth(owner)
    )
    assert response.status_code == 400

    response = client.get("/messages/unread-count", headers={"X-User-Id": "²".encode("latin-1")})
    assert response.status_code == 401
