"""
Product catalog store.

Discount figures are derived from the stored `price` / `original_price` pair
every time a product is serialized; they are never written back. The raw
`file_url` of a product is internal and is stripped from every serialized
product.
"""
import math
import re
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from database import parse_object_id, serialize, utcnow
from errors import NotFoundError
from schemas import ProductCreate, ProductUpdate

RELATED_LIMIT = 8
MAX_PAGE_SIZE = 100
SORT_FIELDS = ("created_at", "price", "downloads", "title")


def discount_percent(price: float, original_price: float) -> int:
    if not original_price or original_price <= 0:
        return 0
    # half-up rounding
    return int(math.floor((original_price - price) / original_price * 100 + 0.5))


def discount_amount(price: float, original_price: float) -> float:
    return max(0, (original_price or 0) - price)


def effective_price(product: dict) -> float:
    price = product.get("price")
    return product.get("original_price", 0) if price is None else price


def apply_discount(original_price: float, discount: float) -> float:
    return round(original_price * (1 - discount / 100), 2)


def serialize_product(doc: dict) -> dict:
    product = serialize(doc)
    product.pop("file_url", None)
    price = effective_price(product)
    original_price = product.get("original_price", price)
    product["final_price"] = price
    product["discount"] = discount_percent(price, original_price)
    product["discount_amount"] = discount_amount(price, original_price)
    return product


class ProductStore:
    def __init__(self, db):
        self.collection = db["product"]

    def get(self, product_id) -> dict:
        """Fetch one product (active or not); malformed ids fail before querying."""
        doc = self.collection.find_one({"_id": parse_object_id(product_id, "product")})
        if not doc:
            raise NotFoundError("Product not found")
        return doc

    def find_related(self, product: dict, limit: int = RELATED_LIMIT) -> List[dict]:
        """Active products sharing the category or any tag, most downloaded first."""
        query = {
            "_id": {"$ne": product["_id"]},
            "active": True,
            "$or": [
                {"category": product.get("category")},
                {"tags": {"$in": product.get("tags") or []}},
            ],
        }
        cursor = (
            self.collection.find(query, {"file_url": 0})
            .sort([("downloads", DESCENDING), ("created_at", DESCENDING)])
            .limit(max(1, min(limit, RELATED_LIMIT)))
        )
        return list(cursor)

    def list(
        self,
        page: int = 1,
        limit: int = 12,
        search: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> dict:
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        filter_q = {"active": True}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            filter_q["$or"] = [{"title": pattern}, {"description": pattern}, {"tags": pattern}]
        if category:
            filter_q["category"] = category
        if tags:
            filter_q["tags"] = {"$in": tags}
        if min_price is not None or max_price is not None:
            price_filter = {}
            if min_price is not None:
                price_filter["$gte"] = min_price
            if max_price is not None:
                price_filter["$lte"] = max_price
            filter_q["price"] = price_filter

        if sort_by not in SORT_FIELDS:
            sort_by = "created_at"
        direction = ASCENDING if sort_order == "asc" else DESCENDING

        total = self.collection.count_documents(filter_q)
        cursor = (
            self.collection.find(filter_q, {"file_url": 0})
            .sort([(sort_by, direction)])
            .skip((page - 1) * limit)
            .limit(limit)
        )

        return {
            "items": list(cursor),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
            "filters": self.facets(),
        }

    def facets(self) -> dict:
        active = {"active": True}
        price_range = list(
            self.collection.aggregate(
                [
                    {"$match": active},
                    {"$group": {"_id": None, "min_price": {"$min": "$price"}, "max_price": {"$max": "$price"}}},
                ]
            )
        )
        bounds = price_range[0] if price_range else {"min_price": 0, "max_price": 0}
        return {
            "categories": sorted(self.collection.distinct("category", active)),
            "tags": sorted(self.collection.distinct("tags", active)),
            "price_range": {"min_price": bounds["min_price"], "max_price": bounds["max_price"]},
        }

    def create(self, data: ProductCreate) -> dict:
        original_price = data.original_price if data.original_price is not None else data.price
        if data.discount is not None:
            price = apply_discount(original_price, data.discount)
        else:
            price = data.price if data.price is not None else original_price

        now = utcnow()
        doc = data.model_dump(exclude={"price", "original_price", "discount"})
        doc.update(
            price=price,
            original_price=original_price,
            downloads=0,
            created_at=now,
            updated_at=now,
        )
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        return doc

    def update(self, product_id, data: ProductUpdate) -> dict:
        existing = self.get(product_id)
        changes = data.model_dump(exclude={"id", "price", "original_price", "discount"}, exclude_none=True)

        if data.price is not None or data.original_price is not None or data.discount is not None:
            original_price = data.original_price
            if original_price is None:
                original_price = existing.get("original_price", effective_price(existing))
            if data.discount is not None:
                price = apply_discount(original_price, data.discount)
            elif data.price is not None:
                price = data.price
            else:
                price = effective_price(existing)
            changes.update(price=price, original_price=original_price)

        changes["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": existing["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def deactivate(self, product_id) -> dict:
        doc = self.collection.find_one_and_update(
            {"_id": parse_object_id(product_id, "product")},
            {"$set": {"active": False, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise NotFoundError("Product not found")
        return doc

    def bulk_delete(self) -> int:
        return self.collection.delete_many({}).deleted_count

    def increment_downloads(self, product_id, by: int = 1) -> None:
        self.collection.update_one({"_id": parse_object_id(product_id, "product")}, {"$inc": {"downloads": by}})
