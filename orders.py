"""
Order intake and confirmation.

Each order line snapshots the product's list price, discount and final price
at checkout, so later catalog edits never change an existing order. The
download window opens exactly once, the first time an order is both paid and
delivered.
"""
import logging
import math
import secrets
import time
from datetime import timedelta
from typing import Optional, Tuple

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from catalog import ProductStore, discount_percent, effective_price
from config import DOWNLOAD_WINDOW_DAYS
from database import as_utc, utcnow
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import OrderCreate, OrderUpdate

logger = logging.getLogger(__name__)

DOWNLOAD_WINDOW = timedelta(days=DOWNLOAD_WINDOW_DAYS)
MAX_PAGE_SIZE = 100


def generate_order_id() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def snapshot_line(product: dict, quantity: int) -> dict:
    final_price = effective_price(product)
    list_price = product.get("original_price", final_price)
    return {
        "product_id": str(product["_id"]),
        "title": product.get("title"),
        "price": list_price,
        "discount": discount_percent(final_price, list_price),
        "final_price": final_price,
        "quantity": quantity,
        "subtotal": round(final_price * quantity, 2),
    }


def is_fulfilled(order: dict) -> bool:
    return order.get("payment_status") == "paid" and order.get("delivery_status") == "delivered"


class OrderStore:
    def __init__(self, db, catalog: ProductStore):
        self.collection = db["order"]
        self.catalog = catalog

    @staticmethod
    def _ref_filter(order_ref) -> dict:
        """Orders are addressable by Mongo id or by their ORD-… id."""
        if not order_ref:
            raise ValidationError("Order ID is required")
        if ObjectId.is_valid(str(order_ref)):
            return {"_id": ObjectId(str(order_ref))}
        return {"order_id": str(order_ref)}

    def create(self, data: OrderCreate) -> dict:
        items = []
        for line in data.lines():
            try:
                product = self.catalog.get(line.product_id)
            except NotFoundError:
                product = None
            if not product or not product.get("active", True):
                raise NotFoundError("Product not found or inactive")
            items.append(snapshot_line(product, line.quantity))

        now = utcnow()
        doc = {
            "order_id": generate_order_id(),
            "customer_name": data.customer_name,
            "customer_email": str(data.customer_email).lower(),
            "customer_phone": data.customer_phone,
            "customer_address": data.customer_address,
            "items": items,
            "total_amount": round(sum(item["subtotal"] for item in items), 2),
            "payment_status": "pending",
            "delivery_status": "pending",
            "download_link": None,
            "download_expires": None,
            "payment_proof": data.payment_proof,
            "notes": data.notes,
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = self.collection.insert_one(doc).inserted_id
        logger.info(f"Order {doc['order_id']} created for {doc['customer_email']} ({doc['total_amount']})")
        return doc

    def get(self, order_ref) -> dict:
        doc = self.collection.find_one(self._ref_filter(order_ref))
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        email: Optional[str] = None,
        delivery_status: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> dict:
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        filter_q = {}
        if email:
            filter_q["customer_email"] = email.strip().lower()
        if delivery_status:
            filter_q["delivery_status"] = delivery_status
        if payment_status:
            filter_q["payment_status"] = payment_status

        total = self.collection.count_documents(filter_q)
        cursor = (
            self.collection.find(filter_q)
            .sort([("created_at", DESCENDING)])
            .skip((page - 1) * limit)
            .limit(limit)
        )
        return {
            "items": list(cursor),
            "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
        }

    def confirm(self, order_ref, update: OrderUpdate) -> Tuple[dict, bool]:
        """Apply an admin status update.

        Returns the updated order and whether this call opened the download
        window. The window is stamped with a conditional update on
        `download_expires` still being unset, so re-confirming never moves it.
        """
        changes = update.model_dump(
            include={"payment_status", "delivery_status", "download_link", "notes"}, exclude_none=True
        )
        changes["updated_at"] = utcnow()
        order = self.collection.find_one_and_update(
            self._ref_filter(order_ref), {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if order is None:
            raise NotFoundError("Order not found")

        if not is_fulfilled(order) or order.get("download_expires"):
            return order, False

        stamped = self.collection.find_one_and_update(
            {"_id": order["_id"], "download_expires": None},
            {"$set": {"download_expires": utcnow() + DOWNLOAD_WINDOW}},
            return_document=ReturnDocument.AFTER,
        )
        if stamped is None:
            return self.get(order["_id"]), False

        for item in stamped.get("items", []):
            self.catalog.increment_downloads(item["product_id"], item.get("quantity", 1))
        logger.info(f"Order {stamped['order_id']} delivered, download open until {stamped['download_expires']}")
        return stamped, True

    def download(self, order_ref, email: Optional[str]) -> dict:
        order = self.get(order_ref)
        # a wrong email looks the same as a missing order
        if not email or order.get("customer_email") != email.strip().lower():
            raise NotFoundError("Order not found")
        if not is_fulfilled(order):
            raise AuthorizationError("Order must be paid and delivered to download")
        expires = as_utc(order.get("download_expires"))
        if expires is not None and expires < utcnow():
            raise AuthorizationError("Download link has expired")
        if not order.get("download_link"):
            raise AuthorizationError("Download link is not available yet")
        return {
            "order_id": order["order_id"],
            "download_link": order["download_link"],
            "download_expires": expires,
        }
