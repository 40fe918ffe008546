import logging
import re
from typing import Optional

from pymongo import ReturnDocument

from database import PRODUCTS, create_document, paginate, parse_object_id, to_dict, utcnow
from errors import NotFoundError
from schemas import ProductIn

logger = logging.getLogger(__name__)


def _product_not_found():
    return NotFoundError("Product not found")


def list_products(
    db,
    search: Optional[str] = None,
    category: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
):
    query = {}
    if search:
        # Literal, case-insensitive substring match on name or description
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        query["category"] = category

    docs, pagination = paginate(db[PRODUCTS], query, page, limit)
    return [to_dict(d) for d in docs], pagination


def list_categories(db):
    categories = db[PRODUCTS].distinct("category")
    return sorted(c for c in categories if c)


def get_product(db, product_id: str):
    oid = parse_object_id(product_id)
    doc = db[PRODUCTS].find_one({"_id": oid}) if oid else None
    if not doc:
        raise _product_not_found()
    return to_dict(doc)


def create_product(db, product: ProductIn):
    product_id = create_document(db, PRODUCTS, product)
    logger.info("Created product %s (%s)", product_id, product.name)
    return to_dict(db[PRODUCTS].find_one({"_id": product_id}))


def update_product(db, product_id: str, product: ProductIn):
    oid = parse_object_id(product_id)
    if oid is None:
        raise _product_not_found()
    data = product.model_dump()
    data["updated_at"] = utcnow()
    doc = db[PRODUCTS].find_one_and_update(
        {"_id": oid},
        {"$set": data},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise _product_not_found()
    logger.info("Updated product %s", product_id)
    return to_dict(doc)


def delete_product(db, product_id: str):
    oid = parse_object_id(product_id)
    res = db[PRODUCTS].delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise _product_not_found()
    logger.info("Deleted product %s", product_id)
