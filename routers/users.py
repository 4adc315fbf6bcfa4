import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

import discounts
from database import serialize, utcnow
from dependencies import (ADMIN_ROLES, Services, get_current_user, get_pending_user, get_services, require_admin,
                          require_superadmin)
from errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailed
from security import create_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_TOKEN_TTL = timedelta(hours=1)


# Schemas (request/response)
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)


class OtpRequest(BaseModel):
    otp: int


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ProfileImageRequest(BaseModel):
    imageUrl: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    email: EmailStr


class DiscountCheckRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)


class CreateAdminRequest(RegisterRequest):
    role: Literal["admin", "superadmin"] = "admin"


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    hidden = {"password", "resetPasswordToken", "resetPasswordExpires", "otp"}
    return serialize({k: v for k, v in user.items() if k not in hidden})


def session_response(user: Dict[str, Any], services: Services) -> Dict[str, Any]:
    return {
        "_id": str(user["_id"]),
        "username": user.get("username"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "profileImage": user.get("profileImage"),
        "token": create_token(user["_id"], services.settings),
    }


def _login(payload: LoginRequest, services: Services) -> Dict[str, Any]:
    user = services.store.users.by_email(payload.email)
    if not user:
        raise NotFound("Invalid Email")
    if not verify_password(payload.password, user.get("password", "")):
        raise Unauthorized("Invalid password")
    return user


def _ensure_email_free(email: str, services: Services) -> None:
    if services.store.users.by_email(email) or services.store.temp_users.by_email(email):
        raise Conflict("Email already exists!")


# Accounts
@router.post("/users/register-user", status_code=201)
def register_user(payload: RegisterRequest, services: Services = Depends(get_services)):
    email = payload.email.lower()
    _ensure_email_free(email, services)
    otp = 100000 + secrets.randbelow(900000)
    pending = services.store.temp_users.create({
        "username": payload.username,
        "email": email,
        "password": hash_password(payload.password),
        "otp": otp,
    })
    services.tasks.submit("otp-mail", services.mailer.send_otp, email, otp)
    logger.info("Pending signup %s created", pending["_id"])
    return {
        "_id": str(pending["_id"]),
        "username": pending["username"],
        "email": pending["email"],
        "token": create_token(pending["_id"], services.settings),
    }


@router.post("/users/verify-otp")
def verify_otp(payload: OtpRequest, pending: dict = Depends(get_pending_user),
               services: Services = Depends(get_services)):
    if int(pending.get("otp", -1)) != payload.otp:
        raise Unauthorized("Invalid OTP")
    user = services.store.users.create({
        "username": pending["username"],
        "email": pending["email"],
        "password": pending["password"],
        "role": "user",
        "profileImage": None,
    })
    services.store.temp_users.delete(pending["_id"])
    return session_response(user, services)


@router.post("/users/login-user")
def login_user(payload: LoginRequest, services: Services = Depends(get_services)):
    return session_response(_login(payload, services), services)


@router.get("/users/me")
def me(user: dict = Depends(get_current_user)):
    return {
        "_id": str(user["_id"]),
        "username": user.get("username"),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "profileImage": user.get("profileImage"),
    }


@router.post("/users/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, services: Services = Depends(get_services)):
    user = services.store.users.by_email(payload.email)
    if not user:
        raise NotFound("User not found")
    token = secrets.token_hex(20)
    services.store.users.update(user["_id"], {
        "resetPasswordToken": token,
        "resetPasswordExpires": utcnow() + RESET_TOKEN_TTL,
    })
    services.tasks.submit("reset-mail", services.mailer.send_password_reset, user["email"], token)
    return {"message": "Reset email sent"}


@router.post("/users/reset-password")
def reset_password(payload: ResetPasswordRequest, services: Services = Depends(get_services)):
    user = services.store.users.by_reset_token(payload.token, utcnow())
    if not user:
        raise ValidationFailed("Invalid or expired token")
    services.store.users.update(user["_id"], {
        "password": hash_password(payload.password),
        "resetPasswordToken": None,
        "resetPasswordExpires": None,
    })
    return {"message": "Password reset successful"}


@router.patch("/users/profile-image")
def update_profile_image(payload: ProfileImageRequest, user: dict = Depends(get_current_user),
                         services: Services = Depends(get_services)):
    updated = services.store.users.update(user["_id"], {"profileImage": payload.imageUrl})
    return {"message": "Profile image updated", "profileImage": updated["profileImage"]}


# User administration
@router.get("/users/all-users")
def all_users(_: dict = Depends(require_admin), services: Services = Depends(get_services)):
    users = services.store.users.find()
    if not users:
        raise NotFound("No users found")
    return [public_user(u) for u in users]


@router.get("/users/user/{user_id}")
def get_user(user_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    user = services.store.users.get(user_id)
    if not user:
        raise NotFound("User not found")
    result = public_user(user)
    result["orderCount"] = services.store.orders.count({"user_id": user_id})
    return result


@router.delete("/users/user/{user_id}")
def delete_user(user_id: str, _: dict = Depends(require_admin), services: Services = Depends(get_services)):
    if not services.store.users.delete(user_id):
        raise NotFound("User not found")
    return {"message": "User deleted successfully"}


# Discount codes
@router.post("/users/subscribe", status_code=201)
def subscribe(payload: SubscribeRequest, services: Services = Depends(get_services)):
    doc = discounts.issue(services.store.discount_codes, payload.email)
    services.tasks.submit("discount-mail", services.mailer.send_discount_code, doc["email"], doc["code"])
    return {"message": "Discount code sent to your email!"}


@router.post("/users/validate-discount")
def validate_discount(payload: DiscountCheckRequest, services: Services = Depends(get_services)):
    doc, message = discounts.check(services.store.discount_codes, payload.email, payload.code)
    if doc is None:
        return JSONResponse(status_code=400, content={"isValid": False, "message": message})
    return {"isValid": True, "message": message}


# Admin accounts
@router.post("/admin/login")
def admin_login(payload: LoginRequest, services: Services = Depends(get_services)):
    user = _login(payload, services)
    if user.get("role") not in ADMIN_ROLES:
        raise Forbidden("Admin access required")
    return session_response(user, services)


@router.post("/admin/create-admin", status_code=201)
def create_admin(payload: CreateAdminRequest, _: dict = Depends(require_superadmin),
                 services: Services = Depends(get_services)):
    email = payload.email.lower()
    _ensure_email_free(email, services)
    user = services.store.users.create({
        "username": payload.username,
        "email": email,
        "password": hash_password(payload.password),
        "role": payload.role,
        "profileImage": None,
    })
    logger.info("Created %s account %s", payload.role, user["_id"])
    return session_response(user, services)
