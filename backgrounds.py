"""
Site background images. Any number can be stored; at most one is meant to be
active at a time.

Activation is two writes: mark the target active, then clear the flag on
every other record. A crash in between leaves more than one record active;
`get_active` resolves that by preferring the most recently activated one.
"""
import logging
import math
import re
import time
from pathlib import Path
from typing import Optional

from pymongo import DESCENDING, ReturnDocument

from config import MAX_BACKGROUND_SIZE
from database import parse_object_id, utcnow
from errors import NotFoundError, UnsupportedMediaTypeError, ValidationError

logger = logging.getLogger(__name__)

BACKGROUND_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}
BACKGROUND_DIR = "uploads/backgrounds"
MAX_BACKGROUND_NAME = 100


class BackgroundStore:
    def __init__(self, db, root):
        self.collection = db["background"]
        self.root = Path(root)

    def list(self, page: int = 1, limit: int = 10) -> dict:
        page = max(page, 1)
        limit = max(1, min(limit, 100))
        total = self.collection.count_documents({})
        cursor = (
            self.collection.find({})
            .sort([("is_active", DESCENDING), ("created_at", DESCENDING)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        return {
            "items": list(cursor),
            "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
        }

    def get_active(self) -> Optional[dict]:
        return self.collection.find_one(
            {"is_active": True}, sort=[("activated_at", DESCENDING), ("created_at", DESCENDING)]
        )

    def create(self, name: str, data: bytes, mime_type: Optional[str], set_active: bool = True) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Background name is required")
        if len(name) > MAX_BACKGROUND_NAME:
            raise ValidationError(f"Name cannot exceed {MAX_BACKGROUND_NAME} characters")
        ext = BACKGROUND_TYPES.get((mime_type or "").lower())
        if ext is None:
            raise UnsupportedMediaTypeError("Invalid file type. Only JPEG, PNG, WebP, and SVG are allowed.")
        if not data:
            raise ValidationError("No file provided")
        if len(data) > MAX_BACKGROUND_SIZE:
            raise ValidationError("File size too large. Maximum 10MB allowed.")

        filename = f"{int(time.time() * 1000)}_{re.sub(r'[^a-zA-Z0-9]', '_', name)}.{ext}"
        directory = self.root / BACKGROUND_DIR
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_bytes(data)

        now = utcnow()
        doc = {
            "name": name,
            "image_url": f"/{BACKGROUND_DIR}/{filename}",
            "is_active": False,
            "activated_at": None,
            "file_size": len(data),
            "file_type": mime_type.lower(),
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        if set_active:
            doc = self.set_active(doc["_id"])
        return doc

    def set_active(self, background_id) -> dict:
        oid = parse_object_id(background_id, "background")
        now = utcnow()
        doc = self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {"is_active": True, "activated_at": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError("Background not found")
        self.collection.update_many(
            {"_id": {"$ne": oid}, "is_active": True},
            {"$set": {"is_active": False, "updated_at": now}},
        )
        logger.info(f"Background '{doc['name']}' is now active")
        return doc

    def update(self, background_id, is_active: Optional[bool] = None, name: Optional[str] = None) -> dict:
        if is_active is None and not name:
            raise ValidationError("No valid fields to update")
        oid = parse_object_id(background_id, "background")

        changes = {"updated_at": utcnow()}
        if name:
            changes["name"] = name.strip()
        if is_active is False:
            changes["is_active"] = False
        doc = self.collection.find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            raise NotFoundError("Background not found")
        if is_active:
            doc = self.set_active(oid)
        return doc

    def delete(self, background_id) -> dict:
        doc = self.collection.find_one_and_delete({"_id": parse_object_id(background_id, "background")})
        if doc is None:
            raise NotFoundError("Background not found")
        path = self.root / doc["image_url"].lstrip("/")
        if path.is_file():
            path.unlink()
        return doc
