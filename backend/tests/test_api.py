from __future__ import annotations

import time
import uuid

from sqlalchemy import func, select

from app import main as main_module
from app.media import content_sha256_hex
from app.models import MediaUpload, Property, User

from helpers import image_bytes, uploaded_files


def _upload(client, user_id, files=None, **fields):
    data = {"user_id": user_id, "title": "Listing", "location": "Somewhere", "price": "1000", "description": ""}
    data.update(fields)
    if user_id is None:
        data.pop("user_id")
    return client.post("/api/upload-property", data=data, files=files or None)


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "service": "sultanproperti", "version": "1.0.0"}
    assert r.headers.get("X-Content-Type-Options") == "nosniff"


def test_create_user_starts_with_zero_balance(client):
    r = client.post("/api/users", json={"username": "alice", "wallet_address": "0xabc"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["username"] == "alice"
    assert body["wallet_address"] == "0xabc"
    assert body["token_balance"] == 0
    uuid.UUID(body["id"])


def test_create_user_duplicate_username(client, make_user):
    make_user("alice")
    r = client.post("/api/users", json={"username": "alice"})
    assert r.status_code == 409
    assert r.json()["detail"] == "Username already exists"


def test_scenario_a_original_upload_earns_reward(client, make_user):
    alice = make_user("alice")

    r = _upload(client, alice, files=[("files", ("front.jpg", image_bytes(1200), "image/jpeg"))])

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["tokens_earned"] == 100
    assert len(body["media_ids"]) == 1
    assert body["message"] == "Property created! Earned 100 tokens"
    assert body["skipped_files"] == []
    assert client.get(f"/api/users/{alice}/balance").json()["token_balance"] == 100


def test_scenario_b_duplicate_bytes_earn_nothing(client, make_user, database):
    alice = make_user("alice")
    bob = make_user("bob")
    data = image_bytes(1200)

    _upload(client, alice, files=[("files", ("front.jpg", data, "image/jpeg"))])
    r = _upload(client, bob, files=[("files", ("copy.jpg", data, "image/jpeg"))])

    assert r.status_code == 200, r.text
    assert r.json()["tokens_earned"] == 0
    assert len(r.json()["media_ids"]) == 1
    assert client.get(f"/api/users/{bob}/balance").json()["token_balance"] == 0
    assert client.get(f"/api/users/{alice}/balance").json()["token_balance"] == 100

    with database.session_scope() as db:
        rows = db.execute(
            select(MediaUpload).where(MediaUpload.content_hash == content_sha256_hex(data))
        ).scalars().all()
        assert len(rows) == 2
        originals = [m for m in rows if m.is_original]
        assert len(originals) == 1
        assert str(originals[0].user_id) == alice


def test_scenario_c_zero_attachments(client, make_user):
    alice = make_user("alice")

    r = _upload(client, alice, title="Bare listing")

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["media_ids"] == []
    assert body["tokens_earned"] == 0
    detail = client.get(f"/api/properties/{body['property_id']}").json()
    assert detail["title"] == "Bare listing"
    assert detail["media"] == []


def test_scenario_d_search_is_case_insensitive(client, make_user):
    alice = make_user("alice")
    _upload(client, alice, title="JAKARTA Loft", location="Central")
    _upload(client, alice, title="Family home", location="South Jakarta")
    _upload(client, alice, title="Villa", location="Ubud", description="Two hours from jakarta airport")
    _upload(client, alice, title="Beach hut", location="Bali", description="Quiet")

    r = client.post("/api/search", json={"query": "jakarta"})

    assert r.status_code == 200
    titles = sorted(p["title"] for p in r.json())
    assert titles == ["Family home", "JAKARTA Loft", "Villa"]


def test_search_treats_wildcards_literally(client, make_user):
    alice = make_user("alice")
    _upload(client, alice, title="100% financed")
    _upload(client, alice, title="Plain")

    r = client.post("/api/search", json={"query": "%"})
    assert [p["title"] for p in r.json()] == ["100% financed"]


def test_scenario_e_unknown_user_balance(client, database):
    r = client.get(f"/api/users/{uuid.uuid4()}/balance")
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"
    with database.session_scope() as db:
        assert db.execute(select(func.count(User.id))).scalar() == 0


def test_unparsable_balance_id_is_client_error(client):
    assert client.get("/api/users/not-a-uuid/balance").status_code == 422


def test_missing_user_id_rejected_before_persistence(client, make_user, database):
    make_user("alice")
    r = _upload(client, None, files=[("files", ("a.jpg", b"abc", "image/jpeg"))])

    assert r.status_code == 400
    assert r.json()["detail"] == "user_id required"
    with database.session_scope() as db:
        assert db.execute(select(func.count(Property.id))).scalar() == 0


def test_invalid_identifiers_and_numbers(client, make_user):
    alice = make_user("alice")

    assert _upload(client, "nope").json()["detail"] == "Invalid user_id"
    assert _upload(client, alice, price="cheap").json()["detail"] == "Invalid price"
    assert _upload(client, alice, bedrooms="3.5").status_code == 400
    assert _upload(client, str(uuid.uuid4())).status_code == 404


def test_optional_numbers_are_stored(client, make_user):
    alice = make_user("alice")

    r = _upload(client, alice, price="1250000.5", bedrooms="3", bathrooms="", area_sqm="120.5")

    detail = client.get(f"/api/properties/{r.json()['property_id']}").json()
    assert detail["price"] == 1250000.5
    assert detail["bedrooms"] == 3
    assert detail["bathrooms"] is None
    assert detail["area_sqm"] == 120.5
    assert detail["user_id"] == alice


def test_non_finite_numbers_rejected(client, make_user, database):
    alice = make_user("alice")

    r = _upload(client, alice, price="inf")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid price"
    assert _upload(client, alice, price="-inf").status_code == 400
    r = _upload(client, alice, area_sqm="nan")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid area_sqm"

    with database.session_scope() as db:
        assert db.execute(select(func.count(Property.id))).scalar() == 0
    r = client.get("/api/properties")
    assert r.status_code == 200, r.text
    assert r.json() == []


def test_negative_numbers_rejected(client, make_user, database):
    alice = make_user("alice")

    assert _upload(client, alice, price="-1").json()["detail"] == "Invalid price"
    assert _upload(client, alice, bedrooms="-2").json()["detail"] == "Invalid bedrooms"
    assert _upload(client, alice, bathrooms="-1").json()["detail"] == "Invalid bathrooms"
    assert _upload(client, alice, area_sqm="-0.5").json()["detail"] == "Invalid area_sqm"
    with database.session_scope() as db:
        assert db.execute(select(func.count(Property.id))).scalar() == 0

    r = _upload(client, alice, price="0", bedrooms="0")
    assert r.status_code == 200, r.text


def test_unreadable_attachment_is_skipped(client, make_user, monkeypatch):
    alice = make_user("alice")
    read = main_module._read_upload

    def _flaky_read(f):
        if f.filename == "broken.jpg":
            raise OSError("connection reset while reading upload")
        return read(f)

    monkeypatch.setattr(main_module, "_read_upload", _flaky_read)

    r = _upload(
        client,
        alice,
        files=[
            ("files", ("broken.jpg", image_bytes(900, seed=b"bad"), "image/jpeg")),
            ("files", ("fine.jpg", image_bytes(900, seed=b"ok"), "image/jpeg")),
        ],
    )

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["skipped_files"] == ["broken.jpg"]
    assert len(body["media_ids"]) == 1
    assert body["tokens_earned"] == 100
    assert client.get(f"/api/users/{alice}/balance").json()["token_balance"] == 100


def _multipart(parts: list[tuple[str, str | None, bytes]], boundary: str = "testboundary") -> bytes:
    """Encode (name, filename, payload) parts; filename "" is kept, as browsers send it."""
    out = b""
    for name, filename, payload in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        out += f"--{boundary}\r\nContent-Disposition: {disposition}\r\n".encode()
        if filename is not None:
            out += b"Content-Type: application/octet-stream\r\n"
        out += b"\r\n" + payload + b"\r\n"
    return out + f"--{boundary}--\r\n".encode()


def test_empty_unnamed_part_is_skipped(client, make_user, store):
    alice = make_user("alice")
    body = _multipart(
        [
            ("user_id", None, alice.encode()),
            ("title", None, b"Listing"),
            ("files", "", b""),
            ("files", "room.jpg", image_bytes(700)),
        ]
    )

    r = client.post(
        "/api/upload-property",
        content=body,
        headers={"Content-Type": "multipart/form-data; boundary=testboundary"},
    )

    assert r.status_code == 200, r.text
    body = r.json()
    assert len(body["media_ids"]) == 1
    assert body["tokens_earned"] == 100
    assert body["skipped_files"] == ["upload"]
    assert len(uploaded_files(store)) == 1


def test_list_properties_newest_first(client, make_user):
    alice = make_user("alice")
    _upload(client, alice, title="older")
    time.sleep(0.01)
    _upload(client, alice, title="newer")

    r = client.get("/api/properties")
    assert r.status_code == 200
    assert [p["title"] for p in r.json()] == ["newer", "older"]


def test_property_detail_and_served_media(client, make_user):
    alice = make_user("alice")
    data = image_bytes(300)
    r = _upload(
        client,
        alice,
        files=[
            ("files", ("front.jpg", data, "image/jpeg")),
            ("files", ("tour.mov", b"moov-bytes", "video/quicktime")),
        ],
    )
    body = r.json()
    assert body["tokens_earned"] == 200

    detail = client.get(f"/api/properties/{body['property_id']}").json()
    kinds = sorted(m["file_type"] for m in detail["media"])
    assert kinds == ["image", "video"]
    assert detail["content_hash"]

    image = next(m for m in detail["media"] if m["file_type"] == "image")
    assert image["is_original"] is True
    assert image["tokens_earned"] == 100
    served = client.get(image["url"])
    assert served.status_code == 200
    assert served.content == data


def test_missing_upload_returns_204(client):
    assert client.get("/uploads/missing.jpg").status_code == 204


def test_unknown_property_is_404(client):
    assert client.get(f"/api/properties/{uuid.uuid4()}").status_code == 404


def test_transactions_history(client, make_user):
    alice = make_user("alice")
    r = _upload(client, alice, files=[("files", ("a.jpg", b"one", "image/jpeg")), ("files", ("b.jpg", b"two", "image/jpeg"))])
    media_ids = set(r.json()["media_ids"])

    txs = client.get(f"/api/users/{alice}/transactions").json()

    assert len(txs) == 2
    assert {t["media_id"] for t in txs} == media_ids
    assert all(t["amount"] == 100 and t["transaction_type"] == "upload_reward" for t in txs)
    assert client.get(f"/api/users/{uuid.uuid4()}/transactions").status_code == 404
