from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import OrderStatus, RequestType, Role, TableStatus


# -------------------------
# Menu
# -------------------------

class MenuItemBase(BaseModel):
    title: str = Field(min_length=1)
    description: str
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    prep_time: int = Field(default=15, gt=0)
    category: str = Field(min_length=1)
    image_url: Optional[str] = None
    is_available: bool = True


class MenuItemCreate(MenuItemBase):
    pass


class MenuItemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    prep_time: Optional[int] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    image_url: Optional[str] = None
    is_available: Optional[bool] = None


class MenuItemRead(MenuItemBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime


# -------------------------
# Tables
# -------------------------

class TableCreate(BaseModel):
    id: int = Field(gt=0)
    table_number: Optional[int] = Field(default=None, gt=0)
    status: TableStatus = TableStatus.FREE


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableRead(BaseModel):
    id: int
    table_number: int
    status: TableStatus
    created_at: datetime
    updated_at: datetime


# -------------------------
# Device sessions
# -------------------------

class DeviceSessionCreate(BaseModel):
    table_id: int
    device_id: str = Field(min_length=1)


class DeviceSessionRead(BaseModel):
    id: uuid.UUID
    table_id: int
    device_id: str
    created_at: datetime


# -------------------------
# Orders
# -------------------------

class OrderLineCreate(BaseModel):
    menu_item_id: uuid.UUID
    quantity: int = Field(default=1, ge=1)


class OrderLine(BaseModel):
    menu_item_id: uuid.UUID
    title: str
    price: Decimal
    quantity: int
    prep_time: int


class OrderCreate(BaseModel):
    table_id: int
    device_id: str = Field(min_length=1)
    items: List[OrderLineCreate] = Field(min_length=1)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_prep_time: Optional[int] = Field(default=None, gt=0)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderRead(BaseModel):
    id: uuid.UUID
    table_id: int
    device_id: str
    items: List[OrderLine]
    total_amount: Decimal
    max_prep_time: int
    status: OrderStatus
    created_at: datetime
    updated_at: datetime


# -------------------------
# Customer requests
# -------------------------

class CustomerRequestCreate(BaseModel):
    table_id: int
    request_type: RequestType
    amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def amount_only_for_bill(self) -> "CustomerRequestCreate":
        if self.amount is not None and self.request_type != RequestType.BILL:
            raise ValueError("amount is only accepted on bill requests")
        return self


class CustomerRequestRead(BaseModel):
    id: uuid.UUID
    table_id: int
    request_type: RequestType
    is_served: bool
    amount: Optional[Decimal] = None
    created_at: datetime
    served_at: Optional[datetime] = None


# -------------------------
# Identities and profiles
# -------------------------

class IdentityCreate(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    id: Optional[uuid.UUID] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileRead(BaseModel):
    id: uuid.UUID
    role: Role
    display_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    display_name: Optional[str] = None


class IdentityRead(BaseModel):
    id: uuid.UUID
    email: str
    created_at: datetime
    profile: ProfileRead


class SessionToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Role
