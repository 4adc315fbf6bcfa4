"""
MongoDB access helpers.

Collection names are the lowercase schema class names (``Product`` ->
"product"). Documents are stamped with naive UTC ``created_at`` /
``updated_at`` on insert.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import ValidationFailed
from settings import Settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes; keep every comparison naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def ensure_object_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except Exception:
        raise ValidationFailed("Invalid id format")


def is_object_id(value: Any) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and ObjectId.is_valid(value))


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize(value: Any) -> Any:
    """Make a stored document JSON friendly (ObjectIds become strings)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def ensure_indexes(db: Database) -> None:
    owned = {"user_id": {"$type": "string"}}
    guest = {"guest_id": {"$type": "string"}}
    variant = [("product_id", ASCENDING), ("selected_image", ASCENDING), ("selected_size", ASCENDING)]
    try:
        db["user"].create_index("email", unique=True)
        db["tempuser"].create_index("email", unique=True)
        db["tempuser"].create_index("created_at", expireAfterSeconds=600)
        db["product"].create_index("product_code", unique=True)
        db["category"].create_index("name", unique=True)
        db["deal"].create_index("deal_code", unique=True)
        db["discountcode"].create_index("code", unique=True)
        db["discountcode"].create_index("email")
        db["discountcode"].create_index("expiresAt", expireAfterSeconds=0)
        db["review"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
        for name in ("cart", "wishlist"):
            db[name].create_index([("user_id", ASCENDING)] + variant, unique=True,
                                  partialFilterExpression=owned)
            db[name].create_index([("guest_id", ASCENDING)] + variant, unique=True,
                                  partialFilterExpression=guest)
        for field in ("user_id", "guest_id", "order_email", "status"):
            db["order"].create_index(field)
        db["order"].create_index([("created_at", DESCENDING)])
        db["activity"].create_index([("guest_id", ASCENDING), ("created_at", ASCENDING)])
        db["activity"].create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])
        db["activity"].create_index([("created_at", DESCENDING)])
    except Exception as exc:
        logger.warning("Unable to ensure indexes: %s", exc)
