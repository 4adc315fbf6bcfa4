"""
One repository per collection.

The ``Store`` is built once from a database handle when the app starts and
reaches handlers through ``dependencies.get_services``.
"""
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, is_object_id, utcnow
from owners import Owner, owner_filter


def slugify(name: str) -> str:
    cleaned = re.sub(r"['’]", "", name.strip().lower())
    return re.sub(r"[^a-z0-9]+", "-", cleaned).strip("-")


def product_image(product: Optional[Dict[str, Any]], selected: Optional[str]) -> Optional[str]:
    """The selected image if it belongs to the product, else the product's first image."""
    images = (product or {}).get("product_images") or []
    if selected and (not images or selected in images):
        return selected
    return images[0] if images else selected


class Repository:
    collection_name = ""

    def __init__(self, db: Database):
        self.db = db
        self.collection = db[self.collection_name]

    def get(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        if not is_object_id(doc_id):
            return None
        return self.collection.find_one({"_id": ObjectId(str(doc_id))})

    def find_one(self, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(filter_dict)

    def find(self, filter_dict: Optional[Dict[str, Any]] = None, sort: Optional[List[Tuple[str, int]]] = None,
             limit: int = 0, skip: int = 0) -> List[Dict[str, Any]]:
        if sort is None and not skip:
            return get_documents(self.db, self.collection_name, filter_dict, limit)
        cursor = self.collection.find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def create(self, data: Any) -> Dict[str, Any]:
        doc_id = create_document(self.db, self.collection_name, data)
        return self.get(doc_id)

    def update(self, doc_id: Any, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not is_object_id(doc_id):
            return None
        changes = dict(changes)
        changes["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": ObjectId(str(doc_id))},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def by_ids(self, ids: Iterable[Any]) -> List[Dict[str, Any]]:
        oids = [ObjectId(str(i)) for i in set(ids) if is_object_id(i)]
        if not oids:
            return []
        return list(self.collection.find({"_id": {"$in": oids}}))

    def delete(self, doc_id: Any) -> bool:
        if not is_object_id(doc_id):
            return False
        return self.collection.delete_one({"_id": ObjectId(str(doc_id))}).deleted_count > 0

    def delete_many(self, filter_dict: Dict[str, Any]) -> int:
        return self.collection.delete_many(filter_dict).deleted_count

    def count(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return self.collection.count_documents(filter_dict or {})


class UserRepository(Repository):
    collection_name = "user"

    def by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email.strip().lower()})

    def by_reset_token(self, token: str, now: datetime) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"resetPasswordToken": token, "resetPasswordExpires": {"$gt": now}})

    def emails(self) -> List[str]:
        return [u["email"] for u in self.collection.find({}, {"email": 1}) if u.get("email")]


class TempUserRepository(Repository):
    collection_name = "tempuser"

    def by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email.strip().lower()})


class CategoryRepository(Repository):
    collection_name = "category"

    def by_name(self, name: str) -> Optional[Dict[str, Any]]:
        """Exact name first, then by slug ("mens-clothing" finds "Men's Clothing")."""
        doc = self.collection.find_one({"name": name})
        if doc:
            return doc
        wanted = slugify(name)
        for doc in self.collection.find():
            if slugify(doc.get("name", "")) == wanted:
                return doc
        return None


class ProductRepository(Repository):
    collection_name = "product"

    def by_code(self, product_code: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"product_code": product_code})

    def adjust_stock(self, product_id: str, delta: int, size: Optional[str] = None) -> bool:
        """Atomically add ``delta`` to the size counter, or to the flat counter when no size is given."""
        if not is_object_id(product_id):
            return False
        query: Dict[str, Any] = {"_id": ObjectId(str(product_id))}
        if size:
            query["sizes.size"] = size
            update = {"$inc": {"sizes.$.stock": delta}}
        else:
            update = {"$inc": {"product_stock": delta}}
        return self.collection.update_one(query, update).modified_count > 0

    def in_category(self, category_id: str) -> List[Dict[str, Any]]:
        return list(self.collection.find({"$or": [{"category": category_id}, {"subcategories": category_id}]}))


class ReviewRepository(Repository):
    collection_name = "review"

    def for_product(self, product_id: str) -> List[Dict[str, Any]]:
        return list(self.collection.find({"product_id": product_id}).sort("created_at", ASCENDING))


class _OwnedRepository(Repository):

    def for_owner(self, owner: Owner) -> List[Dict[str, Any]]:
        return list(self.collection.find(owner_filter(owner)).sort("created_at", ASCENDING))

    def entry(self, owner: Owner, product_id: str, selected_image: str,
              selected_size: Optional[str]) -> Optional[Dict[str, Any]]:
        query = owner_filter(owner)
        query.update({"product_id": product_id, "selected_image": selected_image, "selected_size": selected_size})
        return self.collection.find_one(query)

    def clear(self, owner: Owner) -> int:
        return self.delete_many(owner_filter(owner))


class CartRepository(_OwnedRepository):
    collection_name = "cart"


class WishlistRepository(_OwnedRepository):
    collection_name = "wishlist"


class OrderRepository(Repository):
    collection_name = "order"

    def for_owner(self, owner: Owner) -> List[Dict[str, Any]]:
        return list(self.collection.find(owner_filter(owner)).sort("created_at", DESCENDING))


class DiscountCodeRepository(Repository):
    collection_name = "discountcode"

    def active_for_email(self, email: str, now: datetime) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email, "isUsed": False, "expiresAt": {"$gt": now}})

    def lookup(self, email: str, code: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email, "code": code})

    def mark_used(self, doc_id: ObjectId) -> bool:
        # conditional on isUsed so two concurrent redemptions cannot both win
        result = self.collection.update_one(
            {"_id": doc_id, "isUsed": False},
            {"$set": {"isUsed": True, "updated_at": utcnow()}},
        )
        return result.modified_count > 0


class DealRepository(Repository):
    collection_name = "deal"

    def active(self, now: datetime, category_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"deal_expiry": {"$gte": now}}
        if category_id:
            query["category"] = category_id
        return list(self.collection.find(query))


class ActivityRepository(Repository):
    collection_name = "activity"

    def exists_for(self, key: str, identifier: str) -> bool:
        return self.collection.find_one({key: identifier}, {"_id": 1}) is not None

    def first_two_timestamps(self, key: str) -> Dict[str, Tuple[datetime, Optional[datetime]]]:
        """Map each ``key`` value to its first and second all-time activity timestamps."""
        seen: Dict[str, List[datetime]] = {}
        cursor = self.collection.find({key: {"$ne": None}}, {key: 1, "created_at": 1}).sort("created_at", ASCENDING)
        for doc in cursor:
            identifier = doc.get(key)
            if not identifier:
                continue
            times = seen.setdefault(str(identifier), [])
            if len(times) < 2:
                times.append(doc["created_at"])
        return {k: (v[0], v[1] if len(v) > 1 else None) for k, v in seen.items()}

    def in_window(self, start: datetime, end: Optional[datetime] = None,
                  extra: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        bounds: Dict[str, Any] = {"$gte": start}
        if end is not None:
            bounds["$lt"] = end
        query: Dict[str, Any] = {"created_at": bounds}
        if extra:
            query.update(extra)
        return list(self.collection.find(query, {"user_id": 1, "guest_id": 1, "event_type": 1, "created_at": 1}))

    def linked_users(self, guest_ids: List[str], limit: int = 500) -> List[Dict[str, Any]]:
        if not guest_ids:
            return []
        return list(self.collection.find({"guest_id": {"$in": guest_ids}, "user_id": {"$ne": None}}).limit(limit))

    def set_location(self, doc_id: ObjectId, location: Dict[str, Any]) -> None:
        self.collection.update_one({"_id": doc_id}, {"$set": {"meta.location": location}})

    def counts_by_type(self, limit: int = 50) -> List[Dict[str, Any]]:
        pipeline = [
            {"$group": {"_id": "$event_type", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": limit},
        ]
        return list(self.collection.aggregate(pipeline))

    def distinct_users(self) -> int:
        return len([u for u in self.collection.distinct("user_id") if u])

    def session_durations(self) -> Tuple[float, int]:
        pipeline = [
            {"$match": {"event_type": "session_end", "duration_ms": {"$ne": None}}},
            {"$group": {"_id": None, "avg": {"$avg": "$duration_ms"}, "count": {"$sum": 1}}},
        ]
        rows = list(self.collection.aggregate(pipeline))
        if not rows:
            return 0.0, 0
        return float(rows[0].get("avg") or 0), int(rows[0].get("count") or 0)


class CampaignRepository(Repository):
    collection_name = "campaign"


class SlideRepository(Repository):
    collection_name = "slide"


class BannerRepository(Repository):
    collection_name = "banner"

    def latest(self) -> Optional[Dict[str, Any]]:
        docs = list(self.collection.find().sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(1))
        return docs[0] if docs else None


class ReelRepository(Repository):
    collection_name = "reel"


class Store:
    def __init__(self, db: Database):
        self.db = db
        self.users = UserRepository(db)
        self.temp_users = TempUserRepository(db)
        self.categories = CategoryRepository(db)
        self.products = ProductRepository(db)
        self.reviews = ReviewRepository(db)
        self.carts = CartRepository(db)
        self.wishlists = WishlistRepository(db)
        self.orders = OrderRepository(db)
        self.discount_codes = DiscountCodeRepository(db)
        self.deals = DealRepository(db)
        self.activities = ActivityRepository(db)
        self.campaigns = CampaignRepository(db)
        self.slides = SlideRepository(db)
        self.banners = BannerRepository(db)
        self.reels = ReelRepository(db)
