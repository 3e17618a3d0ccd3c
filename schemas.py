"""
Database Schemas for the studio shop

Request models for the MongoDB-backed collections (user, product, order,
background). Stored documents carry a few server-managed fields on top of
these (timestamps, counters, derived order ids).
"""
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, model_validator

Category = Literal[
    "Digital Art",
    "Illustrations",
    "Templates",
    "Mockups",
    "Icons",
    "Fonts",
    "Textures",
    "Brushes",
    "Other",
]
Role = Literal["admin", "user"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
DeliveryStatus = Literal["pending", "processing", "delivered", "failed"]


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "user"


class ProductCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    price: Optional[float] = Field(None, ge=0, description="Sale price")
    original_price: Optional[float] = Field(None, ge=0, description="List price, defaults to price")
    discount: Optional[float] = Field(None, ge=0, le=100, description="Percent off the list price")
    category: Category
    file_url: str = Field(..., min_length=1)
    watermark_url: str = Field(..., min_length=1)
    preview_images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list, max_length=10)
    active: bool = True

    @model_validator(mode="after")
    def check_price(self):
        if self.price is None and self.original_price is None:
            raise ValueError("price or original_price is required")
        return self


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[Category] = None
    file_url: Optional[str] = None
    watermark_url: Optional[str] = None
    preview_images: Optional[List[str]] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    active: Optional[bool] = None


class OrderLineIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class OrderCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    customer_address: str = Field(..., min_length=1)
    items: List[OrderLineIn] = Field(default_factory=list)
    # single-product checkout shorthand
    product_id: Optional[str] = None
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = Field(None, max_length=500)
    payment_proof: Optional[str] = None

    @model_validator(mode="after")
    def check_lines(self):
        if not self.items and not self.product_id:
            raise ValueError("At least one product is required")
        return self

    def lines(self) -> List[OrderLineIn]:
        if self.items:
            return self.items
        return [OrderLineIn(product_id=self.product_id, quantity=self.quantity)]


class OrderUpdate(BaseModel):
    id: str
    payment_status: Optional[PaymentStatus] = None
    delivery_status: Optional[DeliveryStatus] = Field(
        None, validation_alias=AliasChoices("delivery_status", "order_status")
    )
    download_link: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class BackgroundUpdate(BaseModel):
    id: str
    is_active: Optional[bool] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class EmailRequest(BaseModel):
    to: EmailStr
    subject: Optional[str] = None
    file_link: Optional[str] = Field(None, validation_alias=AliasChoices("file_link", "fileLink"))
