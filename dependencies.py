"""
Request-scoped dependencies.

``Services`` is built once in ``main.create_app`` and parked on
``app.state``; handlers reach it (and the caller's identity) through the
functions below via ``Depends``.
"""
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from database import connect
from errors import Forbidden, NotFound, Unauthorized
from geo import GeoLocator
from mailer import Mailer
from repositories import Store
from security import decode_token
from settings import Settings, load_settings
from tasks import SideEffectQueue

ADMIN_ROLES = ("admin", "superadmin")

security = HTTPBearer(auto_error=False)


@dataclass
class Services:
    settings: Settings
    store: Store
    mailer: Mailer
    geo: GeoLocator
    tasks: SideEffectQueue


def build_services(settings: Optional[Settings] = None, db: Optional[Database] = None) -> Services:
    settings = settings or load_settings()
    if db is None:
        db = connect(settings)
    return Services(
        settings=settings,
        store=Store(db),
        mailer=Mailer(
            settings.resend_api_key,
            settings.mail_from,
            admin_email=settings.admin_notify_email,
            frontend_url=settings.frontend_url,
        ),
        geo=GeoLocator(settings.geo_lookup_url, timeout=settings.geo_timeout_seconds),
        tasks=SideEffectQueue(settings.side_effect_queue_size),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def _token_subject(credentials: HTTPAuthorizationCredentials, services: Services) -> str:
    payload = decode_token(credentials.credentials, services.settings)
    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("Invalid token")
    return str(subject)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> Optional[Dict[str, Any]]:
    """The caller's user document, or None for guests. A bad token is still a 401."""
    if credentials is None:
        return None
    user = services.store.users.get(_token_subject(credentials, services))
    if not user:
        raise Unauthorized("Not authorized, user not found")
    return user


def get_current_user(user: Optional[Dict[str, Any]] = Depends(get_optional_user)) -> Dict[str, Any]:
    if user is None:
        raise Unauthorized("Not authorized, no token")
    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") not in ADMIN_ROLES:
        raise Forbidden("Admin access required")
    return user


def require_superadmin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "superadmin":
        raise Forbidden("Only a superadmin can perform this action")
    return user


def get_pending_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """The signup awaiting OTP verification that the registration token points at."""
    if credentials is None:
        raise Unauthorized("Not authorized, no token")
    pending = services.store.temp_users.get(_token_subject(credentials, services))
    if not pending:
        raise NotFound("User not found or OTP expired")
    return pending


def require_dashboard_secret(
    x_dashboard_secret: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> None:
    expected = services.settings.dashboard_secret
    if not expected:
        return
    if not x_dashboard_secret or not hmac.compare_digest(x_dashboard_secret, expected):
        raise Unauthorized("Invalid dashboard secret")
