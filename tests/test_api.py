"""End-to-end checks through the HTTP layer."""
from bson import ObjectId

import main
import orders

PNG = b"\x89PNG\r\n\x1a\nfake"


def test_root(client):
    assert client.get("/").status_code == 200


# Auth

def test_me_without_token(client):
    resp = client.get("/api/auth")
    assert resp.status_code == 401
    assert resp.json() == {"error": "No token provided"}


def test_first_boot_admin_login(client):
    resp = client.post("/api/auth", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["role"] == "admin"
    assert "password" not in body["user"]
    assert "auth-token" in resp.cookies

    # the cookie alone is enough
    me = client.get("/api/auth")
    assert me.status_code == 200
    assert me.json()["user"]["id"] == body["user"]["id"]

    client.cookies.clear()
    me = client.get("/api/auth", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.json()["user"]["role"] == "admin"


def test_login_errors(client):
    resp = client.post("/api/auth", json={"username": "admin"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Username and password are required"}

    resp = client.post("/api/auth", json={"username": "admin", "password": "wrong-one"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid credentials"}


def test_login_by_email(client):
    resp = client.post("/api/auth", json={"username": "admin@seratusstudio.com", "password": "admin123"})
    assert resp.status_code == 200


def test_garbage_token(client):
    resp = client.get("/api/auth", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token"}


def test_deactivated_user_token_stops_working(client, user_headers, mongo):
    assert client.get("/api/auth", headers=user_headers).status_code == 200

    mongo["user"].update_one({"username": "customer"}, {"$set": {"active": False}})

    resp = client.get("/api/auth", headers=user_headers)
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid token"}


def test_logout_clears_cookie(client):
    client.post("/api/auth", json={"username": "admin", "password": "admin123"})
    resp = client.delete("/api/auth")
    assert resp.status_code == 200
    assert 'auth-token=""' in resp.headers["set-cookie"] or "Max-Age=0" in resp.headers["set-cookie"]


def test_change_password(client, user_headers):
    resp = client.put(
        "/api/auth", json={"current_password": "secret1", "new_password": "secret2"}, headers=user_headers
    )
    assert resp.status_code == 200
    bad = client.post("/api/auth", json={"username": "customer", "password": "secret1"})
    assert bad.status_code == 401
    assert client.post("/api/auth", json={"username": "customer", "password": "secret2"}).status_code == 200


# Users

def test_user_admin_routes(client, admin_headers, user_headers):
    assert client.get("/api/admin/users", headers=user_headers).status_code == 403
    assert client.get("/api/admin/users").status_code == 401

    users = client.get("/api/admin/users", headers=admin_headers).json()
    assert {u["username"] for u in users} == {"admin", "customer"}

    dup = client.post(
        "/api/admin/users",
        json={"username": "customer", "email": "other@seratusstudio.com", "password": "secret1"},
        headers=admin_headers,
    )
    assert dup.status_code == 409

    admin_id = next(u["id"] for u in users if u["username"] == "admin")
    resp = client.delete(f"/api/admin/users?id={admin_id}", headers=admin_headers)
    assert resp.status_code == 400

    customer_id = next(u["id"] for u in users if u["username"] == "customer")
    assert client.delete(f"/api/admin/users?id={customer_id}", headers=admin_headers).status_code == 200


# Catalog

def test_product_lookup(client, product_factory):
    poster = product_factory(category="Templates", tags=["poster"])
    product_factory(category="Templates", downloads=3)
    product_factory(category="Fonts", tags=["poster"])
    product_factory(category="Fonts")

    resp = client.get(f"/api/products/{poster['_id']}")
    assert resp.status_code == 200
    body = resp.json()
    assert "file_url" not in body["product"]
    assert len(body["related_products"]) == 2
    assert body["related_products"][0]["downloads"] == 3
    assert all("file_url" not in p for p in body["related_products"])

    assert client.get("/api/products/not-an-id").status_code == 400
    assert client.get(f"/api/products/{ObjectId()}").status_code == 404


def test_product_listing(client, product_factory):
    product_factory(title="Neon brush pack", category="Brushes")
    product_factory(title="Serif font", category="Fonts", active=False)

    body = client.get("/api/products").json()
    assert [p["title"] for p in body["products"]] == ["Neon brush pack"]
    assert body["filters"]["categories"] == ["Brushes"]
    assert client.get("/api/products?search=neon").json()["pagination"]["total"] == 1


def test_product_admin_routes(client, admin_headers, user_headers):
    payload = {
        "title": "Poster",
        "description": "A3 poster",
        "original_price": 100000,
        "discount": 20,
        "category": "Templates",
        "file_url": "/secure/poster.zip",
        "watermark_url": "/watermarks/default-watermark.png",
    }
    assert client.post("/api/products", json=payload, headers=user_headers).status_code == 403

    resp = client.post("/api/products", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    product = resp.json()["product"]
    assert product["final_price"] == 80000
    assert product["discount"] == 20
    assert "file_url" not in product

    resp = client.put("/api/products", json={"id": product["id"], "discount": 50}, headers=admin_headers)
    assert resp.json()["product"]["price"] == 50000

    assert client.delete(f"/api/products?id={product['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/products").json()["products"] == []


def test_cleanup_requires_admin(client, user_headers, admin_headers, product_factory):
    product_factory()
    product_factory()

    assert client.delete("/api/admin/cleanup/products").status_code == 401
    assert client.delete("/api/admin/cleanup/products", headers=user_headers).status_code == 403

    resp = client.delete("/api/admin/cleanup/products", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["deleted_count"] == 2


# Orders

def test_order_lifecycle(client, admin_headers, product_factory, mongo, monkeypatch):
    sent = []
    monkeypatch.setattr(main, "send_download_email", lambda to, link: sent.append((to, link)))

    product = product_factory(price=80000.0, original_price=100000.0)
    resp = client.post(
        "/api/orders",
        json={
            "customer_name": "Dewi",
            "customer_email": "dewi@seratusstudio.com",
            "customer_phone": "0812",
            "customer_address": "Bandung",
            "items": [{"product_id": str(product["_id"]), "quantity": 1}],
        },
    )
    assert resp.status_code == 201
    order = resp.json()["order"]
    assert order["total_amount"] == 80000
    assert order["items"][0]["final_price"] == 80000
    assert order["items"][0]["discount"] == 20

    mongo["product"].update_one({"_id": product["_id"]}, {"$set": {"price": 50000.0}})
    listed = client.get("/api/orders", headers=admin_headers).json()["orders"]
    assert listed[0]["total_amount"] == 80000

    download_url = f"/api/orders/{order['order_id']}/download?email=dewi@seratusstudio.com"
    assert client.get(download_url).status_code == 403

    confirm = {
        "id": order["order_id"],
        "payment_status": "paid",
        "order_status": "delivered",
        "download_link": "https://files.example/poster",
    }
    first = client.put("/api/orders", json=confirm, headers=admin_headers).json()
    assert first["download_window_opened"] is True
    expires = first["order"]["download_expires"]
    assert expires is not None
    assert sent == [("dewi@seratusstudio.com", "https://files.example/poster")]

    second = client.put("/api/orders", json=confirm, headers=admin_headers).json()
    assert second["download_window_opened"] is False
    assert second["order"]["download_expires"] == expires

    granted = client.get(download_url)
    assert granted.status_code == 200
    assert granted.json()["download_link"] == "https://files.example/poster"
    assert client.get(f"/api/orders/{order['order_id']}/download?email=x@y.com").status_code == 404


def test_order_listing_access(client, user_headers):
    assert client.get("/api/orders").status_code == 401
    assert client.get("/api/orders", headers=user_headers).status_code == 401
    assert client.get("/api/orders?email=dewi@seratusstudio.com").json()["orders"] == []


def test_confirm_requires_admin(client, user_headers):
    resp = client.put("/api/orders", json={"id": "ORD-1", "payment_status": "paid"}, headers=user_headers)
    assert resp.status_code == 403


def test_duplicate_order_id_is_a_conflict(client, product_factory, monkeypatch):
    monkeypatch.setattr(orders, "generate_order_id", lambda: "ORD-1-DEADBEEF")
    payload = {
        "customer_name": "Dewi",
        "customer_email": "dewi@seratusstudio.com",
        "customer_phone": "0812",
        "customer_address": "Bandung",
        "product_id": str(product_factory()["_id"]),
    }

    assert client.post("/api/orders", json=payload).status_code == 201
    resp = client.post("/api/orders", json=payload)
    assert resp.status_code == 409
    assert resp.json() == {"error": "Resource already exists"}


def test_invalid_order_payload(client):
    resp = client.post("/api/orders", json={"customer_name": "Dewi"})
    assert resp.status_code == 400
    assert "error" in resp.json()


# Settings assets

def test_settings_assets(client, admin_headers, user_headers, public_dir):
    resp = client.get("/api/settings/profile-image")
    assert resp.json()["url"] == "/uploads/profile-placeholder.svg"
    assert resp.json()["has_custom"] is False

    files = {"file": ("logo.png", PNG, "image/png")}
    assert client.post("/api/settings/logo", files=files).status_code == 401
    assert client.post("/api/settings/logo", files=files, headers=user_headers).status_code == 403

    resp = client.post("/api/settings/logo", files=files, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["url"] == "/uploads/logo.png"
    assert (public_dir / "uploads" / "logo.png").read_bytes() == PNG
    assert client.get("/api/settings/logo").json()["url"] == "/uploads/logo.png"

    bad = client.post(
        "/api/settings/watermark", files={"file": ("w.svg", b"<svg/>", "image/svg+xml")}, headers=admin_headers
    )
    assert bad.status_code == 400

    first = client.delete("/api/settings/logo", headers=admin_headers).json()
    second = client.delete("/api/settings/logo", headers=admin_headers).json()
    assert (first["removed"], second["removed"]) == (True, False)

    assert client.get("/api/settings/favicon").status_code == 404


# Backgrounds

def test_backgrounds(client, admin_headers, user_headers):
    assert client.get("/api/backgrounds?active=true").json() == {"background": None}
    assert client.get("/api/backgrounds").status_code == 401
    assert client.get("/api/backgrounds", headers=user_headers).status_code == 403

    resp = client.post(
        "/api/backgrounds",
        files={"file": ("sky.png", PNG, "image/png")},
        data={"name": "Sky"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    background = resp.json()["background"]

    active = client.get("/api/backgrounds?active=true").json()["background"]
    assert active["id"] == background["id"]

    resp = client.put(
        "/api/backgrounds", json={"id": background["id"], "is_active": False}, headers=admin_headers
    )
    assert resp.json()["background"]["is_active"] is False
    assert client.delete(f"/api/backgrounds?id={background['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/backgrounds", headers=admin_headers).json()["backgrounds"] == []


def test_background_name_too_long(client, admin_headers):
    resp = client.post(
        "/api/backgrounds",
        files={"file": ("sky.png", PNG, "image/png")},
        data={"name": "x" * 300},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert "name" in resp.json()["error"]


# Admin pages

def test_admin_pages_need_cookie(client):
    resp = client.get("/admin/products", follow_redirects=False)
    assert resp.status_code == 307
    assert resp.headers["location"] == "/admin"
