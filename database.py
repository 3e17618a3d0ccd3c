"""
MongoDB access helpers.

`db` stays None when DATABASE_URL / DATABASE_NAME are not configured; routes
get the handle through `get_db()` so that case surfaces as a clean 500.
"""
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL
from errors import InternalError, ValidationError

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL, tz_aware=True)
    db = client[DATABASE_NAME]


def get_db():
    if db is None:
        raise InternalError("Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes unless the client is tz-aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_object_id(value, label: str = "") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ValidationError(f"Invalid {label} ID" if label else "Invalid ID")
    return ObjectId(str(value))


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out


def ensure_indexes(database) -> None:
    database["user"].create_index("username", unique=True)
    database["user"].create_index("email", unique=True)
    database["user"].create_index([("role", ASCENDING), ("active", ASCENDING)])

    database["product"].create_index([("category", ASCENDING), ("active", ASCENDING)])
    database["product"].create_index([("downloads", DESCENDING)])
    database["product"].create_index([("created_at", DESCENDING)])
    database["product"].create_index([("price", ASCENDING)])

    database["order"].create_index("order_id", unique=True)
    database["order"].create_index("customer_email")
    database["order"].create_index("payment_status")
    database["order"].create_index("delivery_status")
    database["order"].create_index([("created_at", DESCENDING)])

    database["background"].create_index("is_active")
