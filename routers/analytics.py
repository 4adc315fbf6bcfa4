from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

import activity
from database import as_utc, serialize
from dependencies import Services, get_optional_user, get_services, require_dashboard_secret
from errors import ValidationFailed
from owners import resolve_owner

router = APIRouter(prefix="/analytics")


@router.post("/event", status_code=201)
def ingest_event(request: Request, payload: Dict[str, Any] = Body(...),
                 user: Optional[dict] = Depends(get_optional_user), services: Services = Depends(get_services)):
    peer = request.client.host if request.client else None
    doc = activity.log_event(services, payload, user, request.headers, peer)
    return {"ok": True, "id": str(doc["_id"])}


@router.get("/events", dependencies=[Depends(require_dashboard_secret)])
def list_events(user_id: Optional[str] = None, guest_id: Optional[str] = None, event_type: Optional[str] = None,
                start: Optional[datetime] = None, end: Optional[datetime] = None,
                limit: int = Query(200, ge=1, le=1000), skip: int = Query(0, ge=0),
                services: Services = Depends(get_services)):
    events = activity.list_events(
        services.store, user_id, guest_id, event_type,
        as_utc(start) if start else None, as_utc(end) if end else None,
        limit, skip,
    )
    return [serialize(e) for e in events]


@router.get("/summary", dependencies=[Depends(require_dashboard_secret)])
def get_summary(services: Services = Depends(get_services)):
    return activity.summary(services.store)


@router.get("/weekly", dependencies=[Depends(require_dashboard_secret)])
def get_weekly(services: Services = Depends(get_services)):
    return activity.weekly_report(services.store)


@router.get("/monthly", dependencies=[Depends(require_dashboard_secret)])
def get_monthly(services: Services = Depends(get_services)):
    return activity.monthly_report(services.store)


@router.get("/cart", dependencies=[Depends(require_dashboard_secret)])
def get_cart_snapshot(guest_id: Optional[str] = None, user_id: Optional[str] = None,
                      services: Services = Depends(get_services)):
    if not guest_id and not user_id:
        raise ValidationFailed("guest_id or user_id is required")
    owner = resolve_owner({"_id": user_id} if user_id else None, guest_id)
    return {"items": activity.cart_snapshot(services.store, owner)}
