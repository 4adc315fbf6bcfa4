from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from database import as_utc, ensure_object_id, serialize, utcnow
from dependencies import Services, get_services, require_admin
from errors import Conflict, Gone, NotFound, ValidationFailed
from routers.helpers import check_category, validated
from schemas import Deal

router = APIRouter()


def populate_deal(services: Services, deal: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize(deal)
    category = services.store.categories.get(deal.get("category"))
    if category:
        doc["category"] = serialize(category)
    return doc


def _prepared(deal: Deal) -> Dict[str, Any]:
    if deal.deal_price > deal.original_price:
        raise ValidationFailed("Deal price cannot be higher than original price")
    data = deal.model_dump()
    data["deal_expiry"] = as_utc(deal.deal_expiry)
    return data


@router.get("/deals")
def list_deals(services: Services = Depends(get_services)):
    return [populate_deal(services, d) for d in services.store.deals.active(utcnow())]


@router.get("/deal/{deal_id}")
def get_deal(deal_id: str, services: Services = Depends(get_services)):
    ensure_object_id(deal_id)
    deal = services.store.deals.get(deal_id)
    if not deal:
        raise NotFound("Deal not found")
    if deal["deal_expiry"] < utcnow():
        raise Gone("Deal has expired")
    return populate_deal(services, deal)


@router.get("/deals/category/{category_id}")
def deals_in_category(category_id: str, services: Services = Depends(get_services)):
    deals = services.store.deals.active(utcnow(), category_id)
    if not deals:
        raise NotFound("No deals found in this category")
    return [populate_deal(services, d) for d in deals]


@router.post("/create-deal", status_code=201)
def create_deal(payload: Deal, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    data = _prepared(payload)
    check_category(services.store, payload.category)
    if services.store.deals.find_one({"deal_code": payload.deal_code}):
        raise Conflict(f'Deal code "{payload.deal_code}" already exists')
    data["reviews"] = []
    return populate_deal(services, services.store.deals.create(data))


@router.put("/deal/{deal_id}")
def update_deal(deal_id: str, payload: Dict[str, Any] = Body(...), _: dict = Depends(require_admin),
                services: Services = Depends(get_services)):
    ensure_object_id(deal_id)
    deals = services.store.deals
    existing = deals.get(deal_id)
    if not existing:
        raise NotFound("Deal not found")
    changes = {k: v for k, v in payload.items() if k not in ("_id", "created_at", "updated_at", "reviews")}
    merged = validated(Deal, {**existing, **changes})
    data = _prepared(merged)
    if "category" in changes:
        check_category(services.store, merged.category)
    if merged.deal_code != existing.get("deal_code"):
        clash = deals.find_one({"deal_code": merged.deal_code})
        if clash and str(clash["_id"]) != deal_id:
            raise Conflict(f'Deal code "{merged.deal_code}" already exists')
    data.pop("reviews", None)
    return populate_deal(services, deals.update(deal_id, data))


@router.delete("/deal/{deal_id}")
def delete_deal(deal_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(deal_id)
    if not services.store.deals.delete(deal_id):
        raise NotFound("Deal not found")
    return {"message": "Deal deleted successfully"}
