from datetime import timedelta
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from database import utcnow
from errors import Unauthorized
from settings import Settings

password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return password_ctx.verify(password, hashed)


def create_token(user_id: Any, settings: Settings) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "exp": now + timedelta(days=settings.jwt_expires_days),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
