import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

TIMESTAMP = DateTime(timezone=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TableStatus(str, Enum):
    FREE = "free"
    OCCUPIED = "occupied"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "order is ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class RequestType(str, Enum):
    WATER = "water"
    BILL = "bill"
    ORDER_MORE = "order_more"


class Role(str, Enum):
    MANAGER = "manager"
    SERVANT = "servant"


# Forward-only order workflow; re-applying the current status is always allowed.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED}),
    OrderStatus.SERVED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def _in_check(column: str, enum_cls: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class MenuItem(SQLModel, table=True):
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("price > 0", name="menu_items_price_check"),
        CheckConstraint("prep_time > 0", name="menu_items_prep_time_check"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str = Field(index=True)
    description: str
    price: Decimal = Field(max_digits=10, decimal_places=2)
    prep_time: int = Field(default=15)
    category: str = Field(index=True)
    image_url: Optional[str] = None
    is_available: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


class RestaurantTable(SQLModel, table=True):
    __tablename__ = "tables"
    __table_args__ = (
        CheckConstraint(_in_check("status", TableStatus), name="tables_status_check"),
    )

    id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    table_number: int = Field(sa_column_kwargs={"unique": True})
    status: str = Field(default=TableStatus.FREE.value)
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


class DeviceSession(SQLModel, table=True):
    __tablename__ = "device_sessions"
    __table_args__ = (
        UniqueConstraint("table_id", "device_id", name="device_sessions_table_id_device_id_key"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    table_id: int = Field(foreign_key="tables.id", ondelete="CASCADE", index=True)
    device_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


class Order(SQLModel, table=True):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(_in_check("status", OrderStatus), name="orders_status_check"),
        CheckConstraint("total_amount >= 0", name="orders_total_amount_check"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    table_id: int = Field(foreign_key="tables.id", ondelete="CASCADE", index=True)
    device_id: str
    items: list[dict] = Field(sa_column=Column(JSON, nullable=False))
    total_amount: Decimal = Field(max_digits=10, decimal_places=2)
    max_prep_time: int = Field(default=15)
    status: str = Field(default=OrderStatus.PENDING.value, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


class CustomerRequest(SQLModel, table=True):
    __tablename__ = "customer_requests"
    __table_args__ = (
        CheckConstraint(_in_check("request_type", RequestType), name="customer_requests_request_type_check"),
        CheckConstraint(
            "(is_served AND served_at IS NOT NULL) OR (NOT is_served AND served_at IS NULL)",
            name="customer_requests_served_at_check",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    table_id: int = Field(foreign_key="tables.id", ondelete="CASCADE", index=True)
    request_type: str
    is_served: bool = Field(default=False, index=True)
    amount: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP, index=True)
    served_at: Optional[datetime] = Field(default=None, sa_type=TIMESTAMP)


class Identity(SQLModel, table=True):
    __tablename__ = "identities"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(index=True, sa_column_kwargs={"unique": True})
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint(_in_check("role", Role), name="profiles_role_check"),
    )

    id: uuid.UUID = Field(primary_key=True, foreign_key="identities.id", ondelete="CASCADE")
    role: str
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=TIMESTAMP)


__all__ = [
    "CustomerRequest",
    "DeviceSession",
    "Identity",
    "MenuItem",
    "Order",
    "OrderStatus",
    "ORDER_TRANSITIONS",
    "Profile",
    "RequestType",
    "RestaurantTable",
    "Role",
    "TableStatus",
]
