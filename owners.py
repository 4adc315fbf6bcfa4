"""
Who owns a cart row, wishlist row, order or activity record.

A registered user is identified by the id in their token; an anonymous
visitor by the opaque guest id their client generated. Storage keeps both
as ``user_id`` / ``guest_id`` fields with exactly one of them set.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from errors import ValidationFailed


@dataclass(frozen=True)
class Registered:
    user_id: str


@dataclass(frozen=True)
class Guest:
    guest_id: str


Owner = Union[Registered, Guest]


def resolve_owner(user: Optional[Dict[str, Any]], guest_id: Optional[str]) -> Owner:
    """A token wins over a guest id; one of the two is required."""
    if user is not None:
        return Registered(str(user["_id"]))
    if guest_id is None:
        raise ValidationFailed("User or guest ID required")
    if not isinstance(guest_id, str) or not guest_id.strip():
        raise ValidationFailed("Invalid guest ID format")
    return Guest(guest_id.strip())


def owner_filter(owner: Owner) -> Dict[str, str]:
    if isinstance(owner, Registered):
        return {"user_id": owner.user_id}
    return {"guest_id": owner.guest_id}


def owner_fields(owner: Owner) -> Dict[str, Optional[str]]:
    if isinstance(owner, Registered):
        return {"user_id": owner.user_id, "guest_id": None}
    return {"user_id": None, "guest_id": owner.guest_id}


def owner_from_document(doc: Dict[str, Any]) -> Owner:
    if doc.get("user_id"):
        return Registered(str(doc["user_id"]))
    if doc.get("guest_id"):
        return Guest(str(doc["guest_id"]))
    raise ValueError("document has neither user_id nor guest_id")
