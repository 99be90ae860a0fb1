from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, validator


class UserCreate(BaseModel):
    email: str
    password: str

    @validator("email")
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Email cannot be empty")
        if "@" not in v:
            raise ValueError("Email must contain '@'")
        if len(v) > 255:
            raise ValueError("Email cannot exceed 255 characters")
        return v

    @validator("password")
    def validate_password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password cannot be empty")
        if len(v) < 4:
            raise ValueError("Password must be at least 4 characters")
        return v


class UserLogin(BaseModel):
    email: str
    password: str

    @validator("email")
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    id: int
    email: str
    role: str


class MenuItemCreate(BaseModel):
    name: str
    price: int
    description: Optional[str] = ""

    @validator("name")
    def validate_name(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Menu item name cannot be empty")
        if len(v) > 100:
            raise ValueError("Menu item name cannot exceed 100 characters")
        return v.strip()

    @validator("price")
    def validate_price(cls, v: int) -> int:
        if v < 0:
            raise ValueError("price must not be negative")
        return v


class MenuItemResponse(BaseModel):
    id: int
    name: str
    price: int
    description: Optional[str] = ""


class OrderCreate(BaseModel):
    menu_item_id: List[int]
    quantity: List[int]

    @validator("menu_item_id")
    def validate_menu_item_id(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @validator("quantity")
    def validate_quantity(cls, v: List[int], values) -> List[int]:
        ids = values.get("menu_item_id")
        if ids is not None and len(ids) != len(v):
            raise ValueError("menu_item_id and quantity must have the same length")
        if any(q <= 0 for q in v):
            raise ValueError("Quantity must be greater than 0")
        return v

    def pairs(self):
        return list(zip(self.menu_item_id, self.quantity))


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    menu_item_id: int
    quantity: int


class OrderResponse(BaseModel):
    id: int
    order_item: List[OrderItemResponse]
    created_at: datetime = Field(alias="created_At")
    total_price: int
