import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone

os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["PUBLIC_DIR"] = tempfile.mkdtemp(prefix="shop-public-")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("RESEND_API_KEY", None)

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
import main  # noqa: E402
from database import ensure_indexes  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient(tz_aware=True)["shop_test"]
    ensure_indexes(db)
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def public_dir(tmp_path):
    main.app.dependency_overrides[main.get_public_dir] = lambda: tmp_path
    yield tmp_path
    main.app.dependency_overrides.pop(main.get_public_dir, None)


@pytest.fixture
def client(mongo, public_dir):
    with TestClient(main.app) as c:
        yield c


def login(client, username, password):
    resp = client.post("/api/auth", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, "admin", "admin123")


@pytest.fixture
def user_headers(client, admin_headers):
    resp = client.post(
        "/api/admin/users",
        json={"username": "customer", "email": "customer@seratusstudio.com", "password": "secret1"},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return login(client, "customer", "secret1")


@pytest.fixture
def product_factory(mongo):
    """Insert products straight into the collection; later products are newer."""
    counter = itertools.count()

    def make(**overrides):
        n = next(counter)
        doc = {
            "title": f"Product {n}",
            "description": "A downloadable asset",
            "price": 100.0,
            "original_price": 100.0,
            "category": "Icons",
            "file_url": f"/secure/product-{n}.zip",
            "watermark_url": "/watermarks/default-watermark.png",
            "preview_images": [],
            "tags": [],
            "downloads": 0,
            "active": True,
            "created_at": BASE_TIME + timedelta(minutes=n),
            "updated_at": BASE_TIME + timedelta(minutes=n),
        }
        doc.update(overrides)
        doc["_id"] = mongo["product"].insert_one(doc).inserted_id
        return doc

    return make
