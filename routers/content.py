from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from database import ensure_object_id, serialize
from dependencies import Services, get_services, require_admin
from errors import NotFound, ValidationFailed
from routers.helpers import validated
from schemas import Banner, Reel, Slide

router = APIRouter()


# Slides
@router.get("/slides")
def list_slides(services: Services = Depends(get_services)):
    return [serialize(s) for s in services.store.slides.find(sort=[("created_at", 1)])]


@router.get("/slide/{slide_id}")
def get_slide(slide_id: str, services: Services = Depends(get_services)):
    ensure_object_id(slide_id)
    slide = services.store.slides.get(slide_id)
    if not slide:
        raise NotFound("Slide not found")
    return serialize(slide)


@router.post("/create-slide", status_code=201)
def create_slide(payload: Slide, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    return serialize(services.store.slides.create(payload))


@router.put("/slide/{slide_id}")
def update_slide(slide_id: str, payload: Dict[str, Any] = Body(...), _: dict = Depends(require_admin),
                 services: Services = Depends(get_services)):
    ensure_object_id(slide_id)
    slides = services.store.slides
    existing = slides.get(slide_id)
    if not existing:
        raise NotFound("Slide not found")
    changes = {k: v for k, v in payload.items() if k not in ("_id", "created_at", "updated_at")}
    merged = validated(Slide, {**existing, **changes})
    return serialize(slides.update(slide_id, merged.model_dump()))


@router.delete("/slide/{slide_id}")
def delete_slide(slide_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(slide_id)
    if not services.store.slides.delete(slide_id):
        raise NotFound("Slide not found")
    return {"message": "Slide deleted successfully"}


# Friday banner
@router.post("/friday-banner", status_code=201)
def create_banner(payload: Banner, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    if not payload.image and not payload.video:
        raise ValidationFailed("Image or Video is required")
    return serialize(services.store.banners.create(payload))


@router.get("/friday-banner")
def get_banner(services: Services = Depends(get_services)):
    banner = services.store.banners.latest()
    return serialize(banner) if banner else None


@router.delete("/friday-banner/{banner_id}")
def delete_banner(banner_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(banner_id)
    if not services.store.banners.delete(banner_id):
        raise NotFound("Banner not found")
    return {"message": "Banner deleted successfully"}


# Reels
@router.get("/reels")
def list_reels(services: Services = Depends(get_services)):
    return [serialize(r) for r in services.store.reels.find(sort=[("created_at", -1)])]


@router.get("/reel/{reel_id}")
def get_reel(reel_id: str, services: Services = Depends(get_services)):
    ensure_object_id(reel_id)
    reel = services.store.reels.get(reel_id)
    if not reel:
        raise NotFound("Reel not found")
    return serialize(reel)


@router.post("/create-reel", status_code=201)
def create_reel(payload: Reel, user: dict = Depends(require_admin), services: Services = Depends(get_services)):
    data = payload.model_dump()
    data["user_id"] = data.get("user_id") or str(user["_id"])
    return serialize(services.store.reels.create(data))


@router.delete("/reel/{reel_id}")
def delete_reel(reel_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    ensure_object_id(reel_id)
    if not services.store.reels.delete(reel_id):
        raise NotFound("Reel not found")
    return {"message": "Reel deleted successfully"}
