"""Order placement and order queries.

Placing an order runs in two passes. The first pass only reads: it resolves
every product and checks the requested quantities against stock. The second
pass decrements stock with one conditional update per product
(``stock >= qty``), so concurrent orders can never drive stock below zero. If
a conditional update misses, or the order cannot be stored, every decrement
already applied is handed back before the error propagates.
"""
import logging
from collections import OrderedDict
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import (
    ORDERS,
    PRODUCTS,
    USERS,
    create_document,
    paginate,
    parse_object_id,
    utcnow,
)
from errors import InsufficientStockError, NotFoundError, StoreError, ValidationError
from policy import Action, authorize
from schemas import OrderItemIn, OrderStatus, ShippingAddress

logger = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in OrderStatus]


def _order_not_found():
    return NotFoundError("Order not found")


def _validate_items(items: List[OrderItemIn]):
    if not items:
        raise ValidationError("Order must have at least one item")
    for item in items:
        if item.quantity < 1:
            raise ValidationError(
                f"Quantity for product {item.product_id} must be a positive integer"
            )


def _resolve_products(db, items: List[OrderItemIn]):
    """Read-only pass: look up every product and check aggregated quantities."""
    products = {}
    requested = OrderedDict()
    for item in items:
        oid = parse_object_id(item.product_id)
        product = products.get(oid) if oid else None
        if product is None and oid is not None:
            product = db[PRODUCTS].find_one({"_id": oid})
        if not product:
            raise NotFoundError(f"Product {item.product_id} not found")
        products[oid] = product

        requested[oid] = requested.get(oid, 0) + item.quantity
        if product.get("stock", 0) < requested[oid]:
            raise InsufficientStockError(product["name"])
    return products, requested


def _release_stock(db, applied):
    for oid, quantity in applied:
        try:
            db[PRODUCTS].update_one({"_id": oid}, {"$inc": {"stock": quantity}})
        except PyMongoError:
            logger.exception("Failed to release %s units of product %s", quantity, oid)
    if applied:
        logger.warning("Released stock for %d product(s) after a failed order", len(applied))


def _reserve_stock(db, products, requested):
    """Apply pass: atomically decrement stock, all products or none."""
    applied = []
    try:
        for oid, quantity in requested.items():
            updated = db[PRODUCTS].find_one_and_update(
                {"_id": oid, "stock": {"$gte": quantity}},
                {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                if db[PRODUCTS].find_one({"_id": oid}) is None:
                    raise NotFoundError(f"Product {oid} not found")
                raise InsufficientStockError(products[oid]["name"])
            applied.append((oid, quantity))
    except (StoreError, PyMongoError):
        _release_stock(db, applied)
        raise
    return applied


def place_order(db, user_id, items: List[OrderItemIn], shipping_address: ShippingAddress):
    _validate_items(items)
    products, requested = _resolve_products(db, items)

    order_items = []
    total_amount = 0
    for item in items:
        product = products[parse_object_id(item.product_id)]
        total_amount += product["price"] * item.quantity
        order_items.append({
            "product_id": product["_id"],
            "name": product["name"],
            "image": product.get("image"),
            "quantity": item.quantity,
            "price": product["price"],
        })

    applied = _reserve_stock(db, products, requested)
    try:
        order_id = create_document(db, ORDERS, {
            "user_id": parse_object_id(user_id),
            "items": order_items,
            "total_amount": total_amount,
            "shipping_address": shipping_address.model_dump(),
            "status": OrderStatus.pending.value,
        })
    except PyMongoError:
        _release_stock(db, applied)
        raise

    logger.info("Placed order %s: %d item(s), total %.2f", order_id, len(order_items), total_amount)
    return populate_order(db, db[ORDERS].find_one({"_id": order_id}))


def populate_orders(db, orders, product_fields=("name", "image")):
    """Attach current product details and the owning user to each order.

    Items whose product was deleted keep ``product`` as None; their stored
    name, image and price snapshots remain.
    """
    product_ids = {item["product_id"] for o in orders for item in o.get("items", [])}
    user_ids = {o["user_id"] for o in orders if o.get("user_id")}

    projection = {field: 1 for field in product_fields}
    products = {p["_id"]: p for p in db[PRODUCTS].find({"_id": {"$in": list(product_ids)}}, projection)}
    users = {u["_id"]: u for u in db[USERS].find({"_id": {"$in": list(user_ids)}}, {"name": 1, "email": 1})}

    populated = []
    for order in orders:
        items = []
        for item in order.get("items", []):
            product = products.get(item["product_id"])
            ref = None
            if product:
                ref = {"id": str(product["_id"])}
                ref.update({field: product.get(field) for field in product_fields})
            items.append({**item, "product_id": str(item["product_id"]), "product": ref})

        user = users.get(order.get("user_id"))
        d = dict(order)
        d["id"] = str(d.pop("_id"))
        d["user_id"] = str(order.get("user_id"))
        d["items"] = items
        d["user"] = (
            {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email")}
            if user else None
        )
        populated.append(d)
    return populated


def populate_order(db, order, product_fields=("name", "image")):
    return populate_orders(db, [order], product_fields)[0]


def list_user_orders(db, user_id, page: int = 1, limit: int = 10):
    docs, pagination = paginate(db[ORDERS], {"user_id": parse_object_id(user_id)}, page, limit)
    return populate_orders(db, docs), pagination


def get_order(db, order_id: str, requester: dict):
    oid = parse_object_id(order_id)
    order = db[ORDERS].find_one({"_id": oid}) if oid else None
    if not order:
        raise _order_not_found()
    authorize(requester, Action.view_order, order)
    return populate_order(db, order, product_fields=("name", "image", "description"))


def _check_status(status: str):
    if status not in VALID_STATUSES:
        raise ValidationError("Invalid order status")


def list_all_orders(db, page: int = 1, limit: int = 10, status: Optional[str] = None):
    query = {}
    if status:
        _check_status(status)
        query["status"] = status
    docs, pagination = paginate(db[ORDERS], query, page, limit)
    return populate_orders(db, docs), pagination


def update_status(db, order_id: str, status: str):
    _check_status(status)
    oid = parse_object_id(order_id)
    order = db[ORDERS].find_one_and_update(
        {"_id": oid},
        {"$set": {"status": status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    ) if oid else None
    if not order:
        raise _order_not_found()
    logger.info("Order %s status set to %s", order_id, status)
    return populate_order(db, order)
