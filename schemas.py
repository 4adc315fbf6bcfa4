"""
Database Schemas for the Storefront API

Each Pydantic model corresponds to a MongoDB collection. The collection name is the lowercase of the class name.

Example: class DiscountCode -> collection "discountcode"
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed")
HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
PHONE_PATTERN = r"^(?:\+92\d{10}|\d{11})$"


class User(BaseModel):
    username: str
    email: EmailStr
    password: str = Field(..., description="bcrypt hash")
    role: Literal["user", "admin", "superadmin"] = "user"
    profileImage: Optional[str] = None
    resetPasswordToken: Optional[str] = None
    resetPasswordExpires: Optional[datetime] = None


class TempUser(BaseModel):
    """Pending signup awaiting OTP verification, expires after 10 minutes."""
    username: str
    email: EmailStr
    password: str
    otp: int = Field(..., ge=100000, le=999999)


class Category(BaseModel):
    name: str
    parent_category: Optional[str] = None
    subcategories: List[str] = Field(default_factory=list)
    image: str = ""


class SizeStock(BaseModel):
    size: str = Field(..., min_length=1)
    stock: int = 0


class Color(BaseModel):
    name: str
    hex: str = Field(..., pattern=HEX_COLOR_PATTERN)


class Product(BaseModel):
    product_name: str
    product_description: str = ""
    product_base_price: float = Field(..., gt=0)
    product_discounted_price: float = Field(..., gt=0)
    product_stock: int = Field(0, description="Flat stock, ignored when sizes are present; may dip below zero after an un-cancel")
    sizes: List[SizeStock] = Field(default_factory=list)
    colors: List[Color] = Field(default_factory=list)
    warranty: str = ""
    highlights: List[str] = Field(default_factory=list)
    product_images: List[str] = Field(default_factory=list)
    category: str = Field(..., description="Top-level category id")
    subcategories: List[str] = Field(default_factory=list)
    brand_name: str
    product_code: str
    rating: float = Field(4, ge=0, le=5)
    reviews: List[str] = Field(default_factory=list)
    bg_color: str = Field("#FFFFFF", pattern=HEX_COLOR_PATTERN)
    shipping: float = Field(0, ge=0, description="Shipping cost per unit")
    payment: List[str] = Field(default_factory=lambda: ["Cash on Delivery"], min_length=1)
    isNewArrival: bool = False
    isBestSeller: bool = False


class Review(BaseModel):
    user_id: str
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=3, max_length=500)


class Cart(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    product_id: str
    selected_image: str
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    quantity: int = Field(1, ge=1)


class Wishlist(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    product_id: str
    selected_image: str
    selected_size: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    selected_image: Optional[str] = None
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class Order(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    full_name: str
    products: List[OrderItem]
    original_amount: float = Field(..., ge=0, description="Pre-shipping subtotal")
    discount_amount: float = Field(0, ge=0)
    shipping_amount: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    discount_applied: bool = False
    discount_code: Optional[str] = None
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled"] = "pending"
    payment_status: Literal["pending", "completed", "failed"] = "completed"
    shipping_address: str
    order_email: EmailStr
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    city: Optional[str] = None
    delivered_at: Optional[datetime] = None


class DiscountCode(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=8, max_length=8)
    isUsed: bool = False
    expiresAt: datetime


class Deal(BaseModel):
    deal_name: str
    deal_description: str = ""
    original_price: float = Field(..., gt=0)
    deal_price: float = Field(..., gt=0)
    deal_stock: int = Field(0, ge=0)
    deal_images: List[str] = Field(..., min_length=1)
    category: str
    deal_code: str
    rating: float = 4
    reviews: List[str] = Field(default_factory=list)
    deal_expiry: datetime
    bg_color: str = Field("#FFFFFF", pattern=HEX_COLOR_PATTERN)


class Activity(BaseModel):
    user_id: Optional[str] = None
    guest_id: Optional[str] = None
    user_display: Optional[str] = None
    session_id: Optional[str] = None
    event_type: str = Field(..., description="page_view | add_to_cart | order_placed | session_start | session_end | ...")
    url: Optional[str] = None
    element: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: Optional[float] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class Campaign(BaseModel):
    subject: str
    body: str = Field(..., description="HTML content")
    createdBy: Optional[str] = None
    sentAt: Optional[datetime] = None
    recipientCount: int = 0


class Slide(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    buttonText: Optional[str] = None
    image: str = Field(..., description="Desktop image URL")
    mobileImage: Optional[str] = None
    link: str = "/products"
    bgColor: str = "#ffffff"
    titleColor: str = "#000000"
    subtitleColor: str = "#000000"
    buttonBgColor: str = "#ffffff"
    buttonTextColor: str = "#000000"
    size: Literal["small", "medium", "large"] = "medium"


class Banner(BaseModel):
    image: Optional[str] = None
    video: Optional[str] = None
    title: Optional[str] = None
    buttonText: Optional[str] = None
    buttonLink: Optional[str] = None
    timer: Optional[str] = Field(None, description="ISO timestamp, e.g. 2025-12-25T23:59:00")


class Reel(BaseModel):
    title: str
    description: str = ""
    video_url: str
    user_id: Optional[str] = None


COLLECTION_SCHEMAS = {
    "user": User,
    "tempuser": TempUser,
    "category": Category,
    "product": Product,
    "review": Review,
    "cart": Cart,
    "wishlist": Wishlist,
    "order": Order,
    "discountcode": DiscountCode,
    "deal": Deal,
    "activity": Activity,
    "campaign": Campaign,
    "slide": Slide,
    "banner": Banner,
    "reel": Reel,
}
