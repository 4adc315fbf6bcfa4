"""
Activity log: event ingestion and visitor cohort reports.

Cohorts are computed per identifier (guest id or user id, never mixed)
from its first and second all-time activity timestamps. For a reporting
window the identifier is "new" (guests: "unique") when its first activity
falls inside the window and it did not come back more than three hours
later; it is "returning" when it did, or when its first activity predates
the window.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pymongo import DESCENDING

from database import is_object_id, utcnow
from dependencies import Services
from errors import ValidationFailed
from owners import Guest, Owner, Registered, owner_fields
from repositories import Store, product_image
from routers.helpers import validated
from schemas import Activity
from useragent import client_ip, parse_user_agent

logger = logging.getLogger(__name__)

THREE_HOURS = timedelta(hours=3)
WEEK = timedelta(days=7)
YEAR = timedelta(days=365)
NEW = "new"
RETURNING = "returning"
TRACKED_EVENTS = ("add_to_cart", "order_placed", "page_view")
MAX_WEEKLY_IDS = 200

_CHECKOUT_URL = re.compile(r"cashout|checkout|payment")

Timestamps = Dict[str, Tuple[datetime, Optional[datetime]]]


def classify(first: Optional[datetime], second: Optional[datetime], start: datetime,
             end: Optional[datetime] = None) -> Optional[str]:
    """Cohort for one identifier in the window [start, end); None when it can't be placed."""
    if first is None:
        return None
    if first >= start and (end is None or first < end):
        if second is None or second - first <= THREE_HOURS:
            return NEW
        return RETURNING
    if first < start:
        return RETURNING
    return None


def _empty_counts() -> Dict[str, int]:
    return {name: 0 for name in TRACKED_EVENTS}


class _Window:
    """Cohort assignment and event attribution for one reporting window."""

    def __init__(self, guest_times: Timestamps, user_times: Timestamps, start: datetime,
                 end: Optional[datetime] = None):
        self.guest_times = guest_times
        self.user_times = user_times
        self.start = start
        self.end = end
        self.guests: Dict[str, Optional[str]] = {}
        self.users: Dict[str, Optional[str]] = {}
        self.totals = _empty_counts()
        self.guest_counts = {NEW: _empty_counts(), RETURNING: _empty_counts()}
        self.user_counts = {NEW: _empty_counts(), RETURNING: _empty_counts()}

    def _cohort(self, times: Timestamps, identifier: str) -> Optional[str]:
        first, second = times.get(identifier, (None, None))
        return classify(first, second, self.start, self.end)

    def add(self, record: Dict[str, Any]) -> None:
        guest_id = record.get("guest_id")
        user_id = record.get("user_id")
        if guest_id and guest_id not in self.guests:
            self.guests[guest_id] = self._cohort(self.guest_times, guest_id)
        if user_id:
            user_id = str(user_id)
            if user_id not in self.users:
                self.users[user_id] = self._cohort(self.user_times, user_id)

        event_type = record.get("event_type")
        if event_type not in TRACKED_EVENTS:
            return
        self.totals[event_type] += 1
        # registered identity wins when an event carries both
        if user_id:
            cohort = self.users[user_id]
            if cohort:
                self.user_counts[cohort][event_type] += 1
        elif guest_id:
            cohort = self.guests[guest_id]
            if cohort:
                self.guest_counts[cohort][event_type] += 1

    @staticmethod
    def ids(members: Dict[str, Optional[str]], cohort: str, cap: Optional[int] = None) -> List[str]:
        found = [identifier for identifier, c in members.items() if c == cohort]
        return found[:cap] if cap else found

    @staticmethod
    def count(members: Dict[str, Optional[str]], cohort: str) -> int:
        return sum(1 for c in members.values() if c == cohort)


def _user_map(store: Store, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    return {
        str(u["_id"]): {"username": u.get("username"), "email": u.get("email")}
        for u in store.users.by_ids(user_ids)
    }


def _guest_user_map(store: Store, guest_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Best-effort link from guest ids to the accounts they later signed in as."""
    links = store.activities.linked_users(guest_ids)
    users = _user_map(store, [str(a["user_id"]) for a in links])
    result = {}
    for record in links:
        user_id = str(record["user_id"])
        result[record["guest_id"]] = users.get(user_id) or {"user_id": user_id}
    return result


def weekly_report(store: Store, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    start = now - WEEK
    window = _Window(
        store.activities.first_two_timestamps("guest_id"),
        store.activities.first_two_timestamps("user_id"),
        start,
    )
    for record in store.activities.in_window(start):
        window.add(record)

    unique_ids = window.ids(window.guests, NEW, MAX_WEEKLY_IDS)
    returning_ids = window.ids(window.guests, RETURNING, MAX_WEEKLY_IDS)
    new_user_ids = window.ids(window.users, NEW, MAX_WEEKLY_IDS)
    returning_user_ids = window.ids(window.users, RETURNING, MAX_WEEKLY_IDS)
    return {
        "period": {"start": start, "end": now},
        "guests": {
            "unique_count": window.count(window.guests, NEW),
            "returning_count": window.count(window.guests, RETURNING),
            "unique_ids": unique_ids,
            "returning_ids": returning_ids,
            "user_map": _guest_user_map(store, unique_ids + returning_ids),
            "breakdown": {"unique": window.guest_counts[NEW], "returning": window.guest_counts[RETURNING]},
        },
        "registered": {
            "active_count": len(window.users),
            "new_count": window.count(window.users, NEW),
            "returning_count": window.count(window.users, RETURNING),
            "new_ids": new_user_ids,
            "returning_ids": returning_user_ids,
            "user_map": _user_map(store, new_user_ids + returning_user_ids),
            "breakdown": {"new": window.user_counts[NEW], "returning": window.user_counts[RETURNING]},
        },
        "events": window.totals,
    }


def month_bounds(key: str) -> Tuple[datetime, datetime]:
    year, month = (int(part) for part in key.split("-"))
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def monthly_report(store: Store, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    guest_times = store.activities.first_two_timestamps("guest_id")
    user_times = store.activities.first_two_timestamps("user_id")

    months: Dict[str, _Window] = {}
    for record in store.activities.in_window(now - YEAR):
        key = record["created_at"].strftime("%Y-%m")
        if key not in months:
            months[key] = _Window(guest_times, user_times, *month_bounds(key))
        months[key].add(record)

    breakdown = {}
    registered = set()
    for key in sorted(months):
        window = months[key]
        new_user_ids = window.ids(window.users, NEW)
        returning_user_ids = window.ids(window.users, RETURNING)
        registered.update(new_user_ids + returning_user_ids)
        entry: Dict[str, Any] = {
            "unique_guests": window.count(window.guests, NEW),
            "returning_guests": window.count(window.guests, RETURNING),
            "registered_new": len(new_user_ids),
            "registered_returning": len(returning_user_ids),
            "unique_guest_ids": window.ids(window.guests, NEW),
            "returning_guest_ids": window.ids(window.guests, RETURNING),
            "registered_new_ids": new_user_ids,
            "registered_returning_ids": returning_user_ids,
            "cohort_events": {
                "unique": window.guest_counts[NEW],
                "returning": window.guest_counts[RETURNING],
                "registered_new": window.user_counts[NEW],
                "registered_returning": window.user_counts[RETURNING],
            },
        }
        entry.update(window.totals)
        breakdown[key] = entry

    return {"breakdown": breakdown, "user_map": _user_map(store, registered)}


def summary(store: Store) -> Dict[str, Any]:
    average, samples = store.activities.session_durations()
    return {
        "countsByType": store.activities.counts_by_type(),
        "uniqueUsers": store.activities.distinct_users(),
        "avgSessionDurationMs": average,
        "sessionSamples": samples,
    }


def list_events(store: Store, user_id: Optional[str] = None, guest_id: Optional[str] = None,
                event_type: Optional[str] = None, start: Optional[datetime] = None,
                end: Optional[datetime] = None, limit: int = 200, skip: int = 0) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if user_id and is_object_id(user_id):
        query["user_id"] = user_id
    if guest_id:
        query["guest_id"] = str(guest_id)
    if event_type:
        query["event_type"] = event_type
    if start or end:
        query["created_at"] = {}
        if start:
            query["created_at"]["$gte"] = start
        if end:
            query["created_at"]["$lte"] = end
    return store.activities.find(query, sort=[("created_at", DESCENDING)], limit=limit, skip=skip)


def cart_snapshot(store: Store, owner: Owner) -> List[Dict[str, Any]]:
    snapshot = []
    for row in store.carts.for_owner(owner):
        product = store.products.get(row["product_id"]) or {}
        snapshot.append({
            "_id": str(row["_id"]),
            "product_id": row["product_id"],
            "product_name": product.get("product_name"),
            "selected_image": product_image(product, row.get("selected_image")),
            "selected_size": row.get("selected_size"),
            "quantity": row.get("quantity", 0),
            "price": product.get("product_discounted_price") or product.get("product_base_price"),
        })
    return snapshot


def request_meta(headers: Mapping[str, str], peer: Optional[str] = None,
                 meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Attach the client IP and parsed user agent; values the client sent win."""
    meta = dict(meta or {})
    ip = client_ip(headers, peer)
    if ip:
        meta["ip"] = ip
    for key, value in parse_user_agent(headers.get("user-agent")).items():
        meta.setdefault(key, value)
    return meta


def enrich_location(services: Services, activity_id: Any, ip: str) -> None:
    location = services.geo.lookup(ip)
    if location:
        services.store.activities.set_location(activity_id, location)


def _queue_enrichment(services: Services, doc: Dict[str, Any]) -> None:
    ip = (doc.get("meta") or {}).get("ip")
    if ip:
        services.tasks.submit("geo-enrich", enrich_location, services, doc["_id"], ip)


def log_event(services: Services, payload: Dict[str, Any], user: Optional[Dict[str, Any]] = None,
              headers: Optional[Mapping[str, str]] = None, peer: Optional[str] = None) -> Dict[str, Any]:
    """Store one client event, enriched with request details."""
    store = services.store
    event_type = payload.get("event_type")
    if not event_type:
        raise ValidationFailed("event_type is required")

    fields = {k: v for k, v in payload.items() if v is not None}
    event = validated(Activity, dict(fields, url=fields.get("url") or fields.get("path")))
    event_type = event.event_type

    user_id = str(user["_id"]) if user else event.user_id
    if not is_object_id(user_id):
        user_id = None
    guest_id = event.guest_id or None
    url = event.url
    data = dict(event.data)
    meta = request_meta(headers or {}, peer, event.meta)

    if event_type == "page_view" and _CHECKOUT_URL.search(str(url or "").lower()):
        owner: Optional[Owner] = Registered(user_id) if user_id else Guest(guest_id) if guest_id else None
        if owner is not None:
            try:
                items = cart_snapshot(store, owner)
                if items:
                    data["cart_snapshot"] = items
            except Exception as exc:
                logger.warning("Failed to attach cart snapshot: %s", exc)

    if event_type == "page_view":
        key, identifier = ("user_id", user_id) if user_id else ("guest_id", guest_id)
        if identifier and not store.activities.exists_for(key, identifier):
            meta["first_visit"] = True

    doc = store.activities.create({
        "user_id": user_id,
        "guest_id": guest_id,
        "user_display": event.user_display,
        "session_id": event.session_id,
        "event_type": event_type,
        "url": url,
        "element": event.element,
        "data": data,
        "duration_ms": event.duration_ms,
        "meta": meta,
    })
    _queue_enrichment(services, doc)
    return doc


def record_event(services: Services, event_type: str, owner: Owner, data: Dict[str, Any],
                 headers: Mapping[str, str], peer: Optional[str] = None,
                 user_display: Optional[str] = None) -> None:
    """Server-side event from a handler; never fails the caller."""
    try:
        meta = request_meta(headers, peer)
        meta["server_logged"] = True
        doc = services.store.activities.create(dict(
            owner_fields(owner),
            user_display=user_display,
            event_type=event_type,
            url=headers.get("referer"),
            data=data,
            meta=meta,
        ))
        _queue_enrichment(services, doc)
    except Exception as exc:
        logger.warning("Failed to log %s event: %s", event_type, exc)
