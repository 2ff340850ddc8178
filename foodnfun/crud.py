from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, func, select

from . import notifier
from .errors import ConflictError, ConstraintViolation, NotFound, ReferentialViolation
from .menu_data import DEFAULT_MENU_ITEMS, DEFAULT_TABLE_COUNT
from .models import (
    ORDER_TRANSITIONS,
    CustomerRequest,
    DeviceSession,
    Identity,
    MenuItem,
    Order,
    OrderStatus,
    Profile,
    RequestType,
    RestaurantTable,
    Role,
    TableStatus,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _commit(session: Session, *rows: SQLModel) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.info("Rejected write: %s", exc.orig)
        raise ConstraintViolation(f"Write rejected by a database constraint: {exc.orig}") from exc
    for row in rows:
        session.refresh(row)


def _require(session: Session, model: type[SQLModel], key, label: str):
    row = session.get(model, key)
    if row is None:
        raise NotFound(f"{label} not found")
    return row


def _require_table(session: Session, table_id: int) -> RestaurantTable:
    table = session.get(RestaurantTable, table_id)
    if table is None:
        raise ReferentialViolation(f"Table {table_id} does not exist")
    return table


# -------------------------
# Menu operations
# -------------------------

def list_menu_items(
    session: Session,
    *,
    available: bool | None = None,
    category: str | None = None,
) -> List[MenuItem]:
    statement = select(MenuItem)
    if available is not None:
        statement = statement.where(MenuItem.is_available.is_(available))
    if category:
        statement = statement.where(MenuItem.category == category)
    statement = statement.order_by(MenuItem.category.asc(), MenuItem.title.asc())
    return list(session.exec(statement))


def get_menu_item(session: Session, menu_item_id: uuid.UUID) -> MenuItem:
    return _require(session, MenuItem, menu_item_id, "Menu item")


def create_menu_item(session: Session, data: dict) -> MenuItem:
    now = _now()
    item = MenuItem(**data, created_at=now, updated_at=now)
    session.add(item)
    _commit(session, item)
    logger.info("Created menu item %s (%s)", item.id, item.title)
    notifier.publish_change(item, notifier.INSERT)
    return item


def update_menu_item(session: Session, menu_item: MenuItem, updates: dict) -> MenuItem:
    for key, value in updates.items():
        if value is None and key != "image_url":
            continue
        setattr(menu_item, key, value)
    menu_item.updated_at = _now()
    session.add(menu_item)
    _commit(session, menu_item)
    notifier.publish_change(menu_item, notifier.UPDATE)
    return menu_item


def ensure_default_menu_items(session: Session) -> None:
    existing_count = session.exec(select(func.count(MenuItem.id))).one()
    if existing_count:
        return
    now = _now()
    for item in DEFAULT_MENU_ITEMS:
        session.add(MenuItem(**item, is_available=True, created_at=now, updated_at=now))
    session.commit()
    logger.info("Seeded %d default menu items", len(DEFAULT_MENU_ITEMS))


# -------------------------
# Table operations
# -------------------------

def list_tables(session: Session, *, status: TableStatus | None = None) -> List[RestaurantTable]:
    statement = select(RestaurantTable)
    if status is not None:
        statement = statement.where(RestaurantTable.status == TableStatus(status).value)
    statement = statement.order_by(RestaurantTable.table_number.asc())
    return list(session.exec(statement))


def get_table(session: Session, table_id: int) -> RestaurantTable:
    return _require(session, RestaurantTable, table_id, "Table")


def create_table(session: Session, data: dict) -> RestaurantTable:
    table_id = data["id"]
    if session.get(RestaurantTable, table_id) is not None:
        raise ConstraintViolation(f"Table {table_id} already exists")
    now = _now()
    table = RestaurantTable(
        id=table_id,
        table_number=data.get("table_number") or table_id,
        status=TableStatus(data.get("status") or TableStatus.FREE).value,
        created_at=now,
        updated_at=now,
    )
    session.add(table)
    _commit(session, table)
    notifier.publish_change(table, notifier.INSERT)
    return table


def update_table_status(session: Session, table: RestaurantTable, status: TableStatus) -> RestaurantTable:
    table.status = TableStatus(status).value
    table.updated_at = _now()
    session.add(table)
    _commit(session, table)
    notifier.publish_change(table, notifier.UPDATE)
    return table


def delete_table(session: Session, table: RestaurantTable) -> None:
    """Delete a table; its sessions, orders and requests go with it."""
    dependents: list[SQLModel] = []
    for model in (DeviceSession, Order, CustomerRequest):
        dependents.extend(session.exec(select(model).where(model.table_id == table.id)))
    removed = [(row.__tablename__, notifier.snapshot(row)) for row in dependents]
    removed.append((table.__tablename__, notifier.snapshot(table)))

    for row in dependents:
        session.expunge(row)
    session.delete(table)
    _commit(session)
    logger.info("Deleted table %s with %d dependent rows", table.id, len(dependents))
    for name, record in removed:
        notifier.publish_record(name, notifier.DELETE, record)


def ensure_default_tables(session: Session) -> None:
    existing_count = session.exec(select(func.count(RestaurantTable.id))).one()
    if existing_count:
        return
    now = _now()
    for number in range(1, DEFAULT_TABLE_COUNT + 1):
        session.add(RestaurantTable(id=number, table_number=number, created_at=now, updated_at=now))
    session.commit()
    logger.info("Seeded %d default tables", DEFAULT_TABLE_COUNT)


# -------------------------
# Device session operations
# -------------------------

def _find_device_session(session: Session, table_id: int, device_id: str) -> DeviceSession | None:
    statement = select(DeviceSession).where(
        DeviceSession.table_id == table_id,
        DeviceSession.device_id == device_id,
    )
    return session.exec(statement).first()


def register_device_session(session: Session, table_id: int, device_id: str) -> Tuple[DeviceSession, bool]:
    """Insert the (table, device) pair if absent.

    Returns the row and whether it was created. A repeated registration is a
    success that hands back the existing row.
    """
    _require_table(session, table_id)
    existing = _find_device_session(session, table_id, device_id)
    if existing is not None:
        return existing, False

    device_session = DeviceSession(table_id=table_id, device_id=device_id, created_at=_now())
    session.add(device_session)
    try:
        session.commit()
    except IntegrityError:
        # lost a race against the same registration
        session.rollback()
        existing = _find_device_session(session, table_id, device_id)
        if existing is None:
            raise
        return existing, False
    session.refresh(device_session)
    notifier.publish_change(device_session, notifier.INSERT)
    return device_session, True


def list_device_sessions(
    session: Session,
    *,
    table_id: int | None = None,
    device_id: str | None = None,
) -> List[DeviceSession]:
    statement = select(DeviceSession)
    if table_id is not None:
        statement = statement.where(DeviceSession.table_id == table_id)
    if device_id:
        statement = statement.where(DeviceSession.device_id == device_id)
    statement = statement.order_by(DeviceSession.created_at.asc())
    return list(session.exec(statement))


def get_device_session(session: Session, session_id: uuid.UUID) -> DeviceSession:
    return _require(session, DeviceSession, session_id, "Device session")


def delete_device_session(session: Session, device_session: DeviceSession) -> None:
    record = notifier.snapshot(device_session)
    session.delete(device_session)
    _commit(session)
    notifier.publish_record(DeviceSession.__tablename__, notifier.DELETE, record)


# -------------------------
# Order operations
# -------------------------

def price_order_lines(session: Session, lines: List[dict]) -> Tuple[List[dict], Decimal, int]:
    """Resolve order lines against the catalog.

    Returns the line snapshots stored on the order, the total amount and the
    longest prep time. Prices come from the catalog, never from the caller.
    """
    if not lines:
        raise ConstraintViolation("An order needs at least one item")
    ids = {uuid.UUID(str(line["menu_item_id"])) for line in lines}
    menu = {item.id: item for item in session.exec(select(MenuItem).where(MenuItem.id.in_(ids)))}

    snapshots = []
    total = Decimal("0")
    max_prep_time = 0
    for line in lines:
        menu_item_id = uuid.UUID(str(line["menu_item_id"]))
        quantity = int(line.get("quantity", 1))
        if quantity < 1:
            raise ConstraintViolation("Item quantity must be at least 1")
        item = menu.get(menu_item_id)
        if item is None:
            raise ReferentialViolation(f"Menu item {menu_item_id} does not exist")
        if not item.is_available:
            raise ConstraintViolation(f"{item.title} is not available")
        price = Decimal(item.price).quantize(CENTS, rounding=ROUND_HALF_UP)
        total += price * quantity
        max_prep_time = max(max_prep_time, item.prep_time)
        snapshots.append(
            {
                "menu_item_id": str(item.id),
                "title": item.title,
                "price": str(price),
                "quantity": quantity,
                "prep_time": item.prep_time,
            }
        )
    return snapshots, total.quantize(CENTS, rounding=ROUND_HALF_UP), max_prep_time


def create_order(session: Session, data: dict, *, tolerance: Decimal | float = Decimal("0.01")) -> Order:
    _require_table(session, data["table_id"])
    lines, total, max_prep_time = price_order_lines(session, data.get("items") or [])

    claimed_total = data.get("total_amount")
    if claimed_total is not None and abs(Decimal(str(claimed_total)) - total) > Decimal(str(tolerance)):
        raise ConstraintViolation(f"total_amount {claimed_total} does not match the items ({total})")
    claimed_prep = data.get("max_prep_time")
    if claimed_prep is not None and int(claimed_prep) != max_prep_time:
        raise ConstraintViolation(f"max_prep_time {claimed_prep} does not match the items ({max_prep_time})")

    now = _now()
    order = Order(
        table_id=data["table_id"],
        device_id=data["device_id"],
        items=lines,
        total_amount=total,
        max_prep_time=max_prep_time,
        status=OrderStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    _commit(session, order)
    logger.info("Order %s placed at table %s for %s", order.id, order.table_id, total)
    notifier.publish_change(order, notifier.INSERT)
    return order


def list_orders(
    session: Session,
    *,
    table_id: int | None = None,
    status: OrderStatus | None = None,
    device_id: str | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
) -> List[Order]:
    statement = select(Order)
    if table_id is not None:
        statement = statement.where(Order.table_id == table_id)
    if status is not None:
        statement = statement.where(Order.status == OrderStatus(status).value)
    if device_id:
        statement = statement.where(Order.device_id == device_id)
    if created_after is not None:
        statement = statement.where(Order.created_at >= created_after)
    if created_before is not None:
        statement = statement.where(Order.created_at <= created_before)
    statement = statement.order_by(Order.created_at.asc(), Order.id.asc())
    return list(session.exec(statement))


def get_order(session: Session, order_id: uuid.UUID) -> Order:
    return _require(session, Order, order_id, "Order")


def update_order_status(
    session: Session,
    order: Order,
    status: OrderStatus | str,
    *,
    enforce_transitions: bool = True,
) -> Order:
    try:
        target = OrderStatus(status)
    except ValueError as exc:
        raise ConstraintViolation(f"Unknown order status: {status!r}") from exc
    current = OrderStatus(order.status)
    if target == current:
        return order
    if enforce_transitions and target not in ORDER_TRANSITIONS[current]:
        raise ConstraintViolation(f"Cannot move order from {current.value!r} to {target.value!r}")

    statement = (
        update(Order)
        .where(Order.id == order.id, Order.status == current.value)
        .values(status=target.value, updated_at=_now())
    )
    result = session.connection().execute(statement)
    if result.rowcount == 0:
        session.rollback()
        raise ConflictError(f"Order {order.id} changed status concurrently")
    _commit(session, order)
    logger.info("Order %s moved %s -> %s", order.id, current.value, target.value)
    notifier.publish_change(order, notifier.UPDATE)
    return order


def delete_order(session: Session, order: Order) -> None:
    record = notifier.snapshot(order)
    session.delete(order)
    _commit(session)
    notifier.publish_record(Order.__tablename__, notifier.DELETE, record)


# -------------------------
# Customer request operations
# -------------------------

def create_customer_request(session: Session, data: dict) -> CustomerRequest:
    try:
        request_type = RequestType(getattr(data["request_type"], "value", data["request_type"]))
    except ValueError as exc:
        raise ConstraintViolation(f"Unknown request type: {data['request_type']!r}") from exc
    amount = data.get("amount")
    if amount is not None and request_type != RequestType.BILL:
        raise ConstraintViolation("amount is only accepted on bill requests")
    _require_table(session, data["table_id"])
    request = CustomerRequest(
        table_id=data["table_id"],
        request_type=request_type.value,
        amount=amount,
        created_at=_now(),
    )
    session.add(request)
    _commit(session, request)
    logger.info("Table %s asked for %s", request.table_id, request.request_type)
    notifier.publish_change(request, notifier.INSERT)
    return request


def list_customer_requests(
    session: Session,
    *,
    table_id: int | None = None,
    request_type: str | None = None,
    is_served: bool | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
) -> List[CustomerRequest]:
    statement = select(CustomerRequest)
    if table_id is not None:
        statement = statement.where(CustomerRequest.table_id == table_id)
    if request_type is not None:
        statement = statement.where(CustomerRequest.request_type == getattr(request_type, "value", request_type))
    if is_served is not None:
        statement = statement.where(CustomerRequest.is_served.is_(is_served))
    if created_after is not None:
        statement = statement.where(CustomerRequest.created_at >= created_after)
    if created_before is not None:
        statement = statement.where(CustomerRequest.created_at <= created_before)
    statement = statement.order_by(CustomerRequest.created_at.asc(), CustomerRequest.id.asc())
    return list(session.exec(statement))


def get_customer_request(session: Session, request_id: uuid.UUID) -> CustomerRequest:
    return _require(session, CustomerRequest, request_id, "Customer request")


def mark_request_served(session: Session, request: CustomerRequest) -> CustomerRequest:
    """Serve a request once; serving it again leaves it untouched."""
    statement = (
        update(CustomerRequest)
        .where(CustomerRequest.id == request.id, CustomerRequest.is_served.is_(False))
        .values(is_served=True, served_at=_now())
    )
    result = session.connection().execute(statement)
    if result.rowcount == 0:
        session.rollback()
        session.refresh(request)
        return request
    _commit(session, request)
    notifier.publish_change(request, notifier.UPDATE)
    return request


def delete_customer_request(session: Session, request: CustomerRequest) -> None:
    record = notifier.snapshot(request)
    session.delete(request)
    _commit(session)
    notifier.publish_record(CustomerRequest.__tablename__, notifier.DELETE, record)


# -------------------------
# Identity and profile operations
# -------------------------

ROLE_DOMAINS = {
    "@manager.com": Role.MANAGER,
    "@servant.com": Role.SERVANT,
}


def role_for_email(email: str) -> Role:
    address = email.strip().lower()
    for suffix, role in ROLE_DOMAINS.items():
        if address.endswith(suffix):
            return role
    return Role.SERVANT


def provision_identity(session: Session, email: str, identity_id: uuid.UUID | None = None) -> Tuple[Identity, Profile]:
    """Record a new identity together with its profile in one commit."""
    email = email.strip().lower()
    duplicate = session.exec(select(Identity).where(Identity.email == email)).first()
    if duplicate is not None:
        raise ConstraintViolation(f"Identity {email} already exists")

    now = _now()
    identity = Identity(id=identity_id or uuid.uuid4(), email=email, created_at=now)
    profile = Profile(id=identity.id, role=role_for_email(email).value, created_at=now, updated_at=now)
    session.add(identity)
    session.add(profile)
    _commit(session, identity, profile)
    logger.info("Provisioned identity %s as %s", identity.id, profile.role)
    notifier.publish_change(profile, notifier.INSERT)
    return identity, profile


def get_identity(session: Session, identity_id: uuid.UUID) -> Identity:
    return _require(session, Identity, identity_id, "Identity")


def get_profile(session: Session, profile_id: uuid.UUID) -> Profile:
    return _require(session, Profile, profile_id, "Profile")


def list_profiles(session: Session) -> List[Profile]:
    statement = select(Profile).order_by(Profile.created_at.asc(), Profile.id.asc())
    return list(session.exec(statement))


def update_profile(session: Session, profile: Profile, updates: dict) -> Profile:
    if "display_name" in updates:
        profile.display_name = updates["display_name"]
    profile.updated_at = _now()
    session.add(profile)
    _commit(session, profile)
    notifier.publish_change(profile, notifier.UPDATE)
    return profile
