"""
MongoDB access helpers.

Each collection is named after the lowercase model name ("user", "product",
"order"). Services receive the database handle from the ``get_db`` dependency
so it can be swapped out in tests.
"""
import math
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import config

USERS = "user"
PRODUCTS = "product"
ORDERS = "order"

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(config.DATABASE_URL)
    return _client


def get_db():
    return get_client()[config.DATABASE_NAME]


def utcnow():
    return datetime.now(timezone.utc)


def ensure_indexes(db):
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[PRODUCTS].create_index([("category", ASCENDING)])
    db[PRODUCTS].create_index([("created_at", DESCENDING)])
    db[ORDERS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db[ORDERS].create_index([("status", ASCENDING)])


def create_document(db, collection_name: str, data) -> ObjectId:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return result.inserted_id


def parse_object_id(value) -> Optional[ObjectId]:
    """Return an ObjectId for ``value`` or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_dict(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def pagination_envelope(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def paginate(collection, query: dict, page: int = 1, limit: int = 10, sort=None):
    """Run ``query`` newest-first and return (documents, pagination envelope).

    ``total`` counts every match regardless of skip/limit, and a page past the
    end yields an empty list rather than an error.
    """
    skip = (page - 1) * limit
    cursor = collection.find(query).sort(sort or NEWEST_FIRST).skip(skip).limit(limit)
    docs = list(cursor)
    total = collection.count_documents(query)
    return docs, pagination_envelope(page, limit, total)
