import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from pymongo import ASCENDING

from database import ensure_object_id, serialize
from dependencies import Services, get_current_user, get_services, require_admin
from errors import Conflict, NotFound, ValidationFailed
from routers.helpers import check_category, validated
from schemas import Product

logger = logging.getLogger(__name__)

router = APIRouter()

# fields a client can never set directly
PROTECTED_FIELDS = {"_id", "created_at", "updated_at", "reviews"}


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    parent_category: Optional[str] = None
    image: str = ""


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None


class ReviewIn(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=3, max_length=500)


def populate_product(services: Services, product: Dict[str, Any]) -> Dict[str, Any]:
    store = services.store
    doc = serialize(product)
    category = store.categories.get(product.get("category"))
    if category:
        doc["category"] = serialize(category)
    doc["subcategories"] = [serialize(c) for c in store.categories.by_ids(product.get("subcategories") or [])]
    doc["reviews"] = [serialize(r) for r in store.reviews.for_product(str(product["_id"]))]
    return doc


def _check_prices(product: Product) -> None:
    if product.product_discounted_price > product.product_base_price:
        raise ValidationFailed("Discounted price cannot be higher than base price")


def _check_stock(product: Product, fields: Optional[set] = None) -> None:
    """Admin input can't set a negative counter; stored ones may go negative after an un-cancel."""
    if (fields is None or "product_stock" in fields) and product.product_stock < 0:
        raise ValidationFailed("product_stock: Input should be greater than or equal to 0")
    if fields is None or "sizes" in fields:
        for entry in product.sizes:
            if entry.stock < 0:
                raise ValidationFailed(f"Stock for size {entry.size} cannot be negative")


# Categories
@router.get("/categories")
def list_categories(services: Services = Depends(get_services)):
    return [serialize(c) for c in services.store.categories.find(sort=[("name", ASCENDING)])]


@router.get("/category/name/{name}")
def get_category_by_name(name: str, services: Services = Depends(get_services)):
    category = services.store.categories.by_name(name)
    if not category:
        raise NotFound("Category not found")
    return serialize(category)


@router.get("/category/{category_id}")
def get_category(category_id: str, services: Services = Depends(get_services)):
    ensure_object_id(category_id)
    category = services.store.categories.get(category_id)
    if not category:
        raise NotFound("Category not found")
    return serialize(category)


@router.post("/create-category", status_code=201)
def create_category(payload: CategoryIn, _: dict = Depends(require_admin),
                    services: Services = Depends(get_services)):
    categories = services.store.categories
    if categories.find_one({"name": payload.name}):
        raise Conflict("Category already exists")
    parent = None
    if payload.parent_category:
        parent = categories.get(payload.parent_category)
        if not parent or parent.get("parent_category"):
            raise ValidationFailed("Parent category not found or is itself a subcategory")
    category = categories.create({
        "name": payload.name,
        "parent_category": str(parent["_id"]) if parent else None,
        "subcategories": [],
        "image": payload.image,
    })
    if parent:
        categories.update(parent["_id"], {"subcategories": (parent.get("subcategories") or []) + [str(category["_id"])]})
    return serialize(category)


@router.put("/category/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, _: dict = Depends(require_admin),
                    services: Services = Depends(get_services)):
    ensure_object_id(category_id)
    categories = services.store.categories
    if not categories.get(category_id):
        raise NotFound("Category not found")
    changes = payload.model_dump(exclude_none=True)
    if "name" in changes:
        clash = categories.find_one({"name": changes["name"]})
        if clash and str(clash["_id"]) != category_id:
            raise Conflict("Category already exists")
    return serialize(categories.update(category_id, changes))


@router.delete("/category/{category_id}")
def delete_category(category_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(category_id)
    categories = services.store.categories
    category = categories.get(category_id)
    if not category:
        raise NotFound("Category not found")
    for child_id in category.get("subcategories") or []:
        categories.delete(child_id)
    parent = categories.get(category.get("parent_category"))
    if parent:
        remaining = [c for c in parent.get("subcategories") or [] if c != category_id]
        categories.update(parent["_id"], {"subcategories": remaining})
    categories.delete(category_id)
    return {"message": "Category deleted successfully"}


# Products
@router.get("/products")
def list_products(services: Services = Depends(get_services)):
    return [populate_product(services, p) for p in services.store.products.find()]


@router.get("/product/{product_id}")
def get_product(product_id: str, services: Services = Depends(get_services)):
    ensure_object_id(product_id)
    product = services.store.products.get(product_id)
    if not product:
        raise NotFound("Product not found")
    return populate_product(services, product)


@router.get("/products/category/{category_id}")
def products_in_category(category_id: str, services: Services = Depends(get_services)):
    ensure_object_id(category_id)
    return [populate_product(services, p) for p in services.store.products.in_category(category_id)]


@router.post("/create-product", status_code=201)
def create_product(payload: Product, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    products = services.store.products
    _check_prices(payload)
    _check_stock(payload)
    if products.by_code(payload.product_code):
        raise Conflict(f'Product code "{payload.product_code}" already exists. Please use a unique product code.')
    check_category(services.store, payload.category, payload.subcategories)
    data = payload.model_dump()
    data["reviews"] = []
    product = products.create(data)
    logger.info("Created product %s (%s)", product["_id"], payload.product_code)
    return populate_product(services, product)


@router.put("/product/{product_id}")
def update_product(product_id: str, payload: Dict[str, Any] = Body(...), _: dict = Depends(require_admin),
                   services: Services = Depends(get_services)):
    ensure_object_id(product_id)
    products = services.store.products
    existing = products.get(product_id)
    if not existing:
        raise NotFound("Product not found")
    changes = {k: v for k, v in payload.items() if k not in PROTECTED_FIELDS}
    merged = validated(Product, {**existing, **changes})
    _check_prices(merged)
    _check_stock(merged, set(changes))
    if merged.product_code != existing.get("product_code"):
        clash = products.by_code(merged.product_code)
        if clash and str(clash["_id"]) != product_id:
            raise Conflict(f'Product code "{merged.product_code}" already exists')
    if "category" in changes or "subcategories" in changes:
        check_category(services.store, merged.category, merged.subcategories)
    data = merged.model_dump(exclude={"reviews"})
    return populate_product(services, products.update(product_id, data))


@router.delete("/product/{product_id}")
def delete_product(product_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(product_id)
    store = services.store
    if not store.products.get(product_id):
        raise NotFound("Product not found")
    store.reviews.delete_many({"product_id": product_id})
    store.carts.delete_many({"product_id": product_id})
    store.products.delete(product_id)
    return {"message": "Product deleted successfully"}


# Reviews
def _with_author(services: Services, review: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize(review)
    author = services.store.users.get(review.get("user_id"))
    doc["user"] = {"_id": review.get("user_id"), "username": author.get("username") if author else None}
    return doc


@router.post("/reviews/{product_id}", status_code=201)
def submit_review(product_id: str, payload: ReviewIn, user: dict = Depends(get_current_user),
                  services: Services = Depends(get_services)):
    ensure_object_id(product_id)
    store = services.store
    product = store.products.get(product_id)
    if not product:
        raise NotFound("Product not found")
    user_id = str(user["_id"])
    if store.reviews.find_one({"user_id": user_id, "product_id": product_id}):
        raise ValidationFailed("You have already reviewed this product")
    review = store.reviews.create({
        "user_id": user_id,
        "product_id": product_id,
        "rating": payload.rating,
        "comment": payload.comment,
    })
    reviews: List[Dict[str, Any]] = store.reviews.for_product(product_id)
    store.products.update(product_id, {
        "reviews": [str(r["_id"]) for r in reviews],
        "rating": sum(r["rating"] for r in reviews) / len(reviews),
    })
    return _with_author(services, review)


@router.get("/reviews/{product_id}")
def list_reviews(product_id: str, services: Services = Depends(get_services)):
    ensure_object_id(product_id)
    if not services.store.products.get(product_id):
        raise NotFound("Product not found")
    return [_with_author(services, r) for r in services.store.reviews.for_product(product_id)]
