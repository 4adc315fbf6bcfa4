"""
Single-use 10% discount codes tied to an e-mail address.

A code is issued on newsletter signup, valid for seven days, and redeemed
at most once at checkout. Expired codes are also swept by the TTL index on
``expiresAt``.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from database import utcnow
from errors import Conflict, StoreError, ValidationFailed
from repositories import DiscountCodeRepository

logger = logging.getLogger(__name__)

CODE_TTL = timedelta(days=7)
DISCOUNT_RATE = 0.10
CODE_ATTEMPTS = 5

INVALID = "Invalid discount code"
ALREADY_USED = "Discount code has already been used"
EXPIRED = "Discount code has expired"
VALID = "Valid discount code"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_code(code: str) -> str:
    return code.strip().upper()


def generate_code() -> str:
    return secrets.token_hex(4).upper()


def issue(codes: DiscountCodeRepository, email: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    email = normalize_email(email)
    if codes.active_for_email(email, now):
        raise Conflict("A discount code has already been sent to this email")
    for _ in range(CODE_ATTEMPTS):
        try:
            doc = codes.create({
                "email": email,
                "code": generate_code(),
                "isUsed": False,
                "created_at": now,
                "expiresAt": now + CODE_TTL,
            })
        except DuplicateKeyError:
            logger.warning("Discount code collision, generating another")
            continue
        logger.info("Issued discount code for %s", email)
        return doc
    raise StoreError("Could not generate a unique discount code")


def check(codes: DiscountCodeRepository, email: str, code: str,
          now: Optional[datetime] = None) -> Tuple[Optional[Dict[str, Any]], str]:
    """Look up ``code`` for ``email``; returns the document (None when unusable) and a message."""
    now = now or utcnow()
    doc = codes.lookup(normalize_email(email), normalize_code(code))
    if not doc:
        return None, INVALID
    if doc.get("isUsed"):
        return None, ALREADY_USED
    if doc["expiresAt"] <= now:
        return None, EXPIRED
    return doc, VALID


def redeem(codes: DiscountCodeRepository, email: str, code: str, now: Optional[datetime] = None) -> str:
    """Mark the code used; returns the normalized code or raises with the reason it can't be used."""
    doc, message = check(codes, email, code, now)
    if doc is None:
        raise ValidationFailed(message)
    if not codes.mark_used(doc["_id"]):
        raise ValidationFailed(ALREADY_USED)
    return doc["code"]


def apply_discount(amount: float) -> float:
    return round(amount * (1 - DISCOUNT_RATE), 2)
