from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from . import crud, schemas
from .config import DEV_JWT_SECRET, Settings, get_settings
from .database import engine, get_session, init_db
from .errors import AuthorizationDenied, FoodNFunError
from .models import OrderStatus, RequestType, TableStatus
from .notifier import change_feed
from .security import AccessGuard, CurrentPrincipal, StaffPrincipal, create_session_token, optional_principal

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def check_secrets(current: Settings) -> None:
    if current.jwt_secret == DEV_JWT_SECRET:
        if not current.is_development:
            raise RuntimeError("JWT_SECRET must be set outside development")
        logger.warning("Using the development JWT secret; set JWT_SECRET before deploying")
    if not current.access_key:
        logger.warning("ACCESS_KEY is not set; identity provisioning and token issuance are disabled")


@asynccontextmanager
async def lifespan(_: FastAPI):
    check_secrets(settings)
    init_db()
    if settings.seed_defaults:
        with Session(engine) as session:
            crud.ensure_default_menu_items(session)
            crud.ensure_default_tables(session)
    yield


# Every route decodes a bearer token when one is sent, so a bad token is a 401 everywhere.
app = FastAPI(
    title="Food 'n' Fun Table Ordering",
    version="0.1.0",
    lifespan=lifespan,
    dependencies=[Depends(optional_principal)],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FoodNFunError)
async def handle_domain_error(request: Request, exc: FoodNFunError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


# -------------------------
# Menu
# -------------------------

@app.get("/menu-items", response_model=List[schemas.MenuItemRead])
def list_menu_items(
    available: Optional[bool] = None,
    category: Optional[str] = None,
    session: Session = Depends(get_session),
):
    return crud.list_menu_items(session, available=available, category=category)


@app.get("/menu-items/{menu_item_id}", response_model=schemas.MenuItemRead)
def get_menu_item(menu_item_id: uuid.UUID, session: Session = Depends(get_session)):
    return crud.get_menu_item(session, menu_item_id)


@app.post("/menu-items", response_model=schemas.MenuItemRead, status_code=status.HTTP_201_CREATED)
def create_menu_item(
    payload: schemas.MenuItemCreate,
    _: StaffPrincipal,
    session: Session = Depends(get_session),
):
    return crud.create_menu_item(session, payload.model_dump())


@app.patch("/menu-items/{menu_item_id}", response_model=schemas.MenuItemRead)
def update_menu_item(
    menu_item_id: uuid.UUID,
    payload: schemas.MenuItemUpdate,
    _: StaffPrincipal,
    session: Session = Depends(get_session),
):
    menu_item = crud.get_menu_item(session, menu_item_id)
    return crud.update_menu_item(session, menu_item, payload.model_dump(exclude_unset=True))


# -------------------------
# Tables
# -------------------------

@app.get("/tables", response_model=List[schemas.TableRead])
def list_tables(
    status_filter: Optional[TableStatus] = Query(default=None, alias="status"),
    session: Session = Depends(get_session),
):
    return crud.list_tables(session, status=status_filter)


@app.get("/tables/{table_id}", response_model=schemas.TableRead)
def get_table(table_id: int, session: Session = Depends(get_session)):
    return crud.get_table(session, table_id)


@app.post("/tables", response_model=schemas.TableRead, status_code=status.HTTP_201_CREATED)
def create_table(
    payload: schemas.TableCreate,
    _: StaffPrincipal,
    session: Session = Depends(get_session),
):
    return crud.create_table(session, payload.model_dump())


@app.patch("/tables/{table_id}", response_model=schemas.TableRead)
def update_table_status(
    table_id: int,
    payload: schemas.TableStatusUpdate,
    _: StaffPrincipal,
    session: Session = Depends(get_session),
):
    table = crud.get_table(session, table_id)
    return crud.update_table_status(session, table, payload.status)


@app.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(
    table_id: int,
    _: StaffPrincipal,
    session: Session = Depends(get_session),
):
    table = crud.get_table(session, table_id)
    crud.delete_table(session, table)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------
# Device sessions
# -------------------------

@app.get("/device-sessions", response_model=List[schemas.DeviceSessionRead])
def list_device_sessions(
    table_id: Optional[int] = None,
    device_id: Optional[str] = None,
    session: Session = Depends(get_session),
):
    return crud.list_device_sessions(session, table_id=table_id, device_id=device_id)


@app.post("/device-sessions", response_model=schemas.DeviceSessionRead, status_code=status.HTTP_201_CREATED)
def register_device_session(
    payload: schemas.DeviceSessionCreate,
    response: Response,
    session: Session = Depends(get_session),
):
    device_session, created = crud.register_device_session(session, payload.table_id, payload.device_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return device_session


@app.delete("/device-sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device_session(session_id: uuid.UUID, session: Session = Depends(get_session)):
    device_session = crud.get_device_session(session, session_id)
    crud.delete_device_session(session, device_session)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------
# Orders
# -------------------------

@app.get("/orders", response_model=List[schemas.OrderRead])
def list_orders(
    table_id: Optional[int] = None,
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    device_id: Optional[str] = None,
    created_after: Optional[datetime] = None,
    created_before: Optional[datetime] = None,
    session: Session = Depends(get_session),
):
    return crud.list_orders(
        session,
        table_id=table_id,
        status=status_filter,
        device_id=device_id,
        created_after=created_after,
        created_before=created_before,
    )


@app.get("/orders/{order_id}", response_model=schemas.OrderRead)
def get_order(order_id: uuid.UUID, session: Session = Depends(get_session)):
    return crud.get_order(session, order_id)


@app.post("/orders", response_model=schemas.OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(payload: schemas.OrderCreate, session: Session = Depends(get_session)):
    return crud.create_order(session, payload.model_dump(), tolerance=settings.aggregate_tolerance)


@app.patch("/orders/{order_id}/status", response_model=schemas.OrderRead)
def update_order_status(
    order_id: uuid.UUID,
    payload: schemas.OrderStatusUpdate,
    session: Session = Depends(get_session),
):
    order = crud.get_order(session, order_id)
    return crud.update_order_status(
        session,
        order,
        payload.status,
        enforce_transitions=settings.enforce_order_transitions,
    )


@app.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(order_id: uuid.UUID, session: Session = Depends(get_session)):
    order = crud.get_order(session, order_id)
    crud.delete_order(session, order)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------
# Customer requests
# -------------------------

@app.get("/customer-requests", response_model=List[schemas.CustomerRequestRead])
def list_customer_requests(
    table_id: Optional[int] = None,
    request_type: Optional[RequestType] = None,
    is_served: Optional[bool] = None,
    created_after: Optional[datetime] = None,
    created_before: Optional[datetime] = None,
    session: Session = Depends(get_session),
):
    return crud.list_customer_requests(
        session,
        table_id=table_id,
        request_type=request_type,
        is_served=is_served,
        created_after=created_after,
        created_before=created_before,
    )


@app.post("/customer-requests", response_model=schemas.CustomerRequestRead, status_code=status.HTTP_201_CREATED)
def create_customer_request(payload: schemas.CustomerRequestCreate, session: Session = Depends(get_session)):
    return crud.create_customer_request(session, payload.model_dump())


@app.post("/customer-requests/{request_id}/serve", response_model=schemas.CustomerRequestRead)
def serve_customer_request(request_id: uuid.UUID, session: Session = Depends(get_session)):
    request = crud.get_customer_request(session, request_id)
    return crud.mark_request_served(session, request)


@app.delete("/customer-requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer_request(request_id: uuid.UUID, session: Session = Depends(get_session)):
    request = crud.get_customer_request(session, request_id)
    crud.delete_customer_request(session, request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------
# Identities and profiles
# -------------------------

@app.post("/auth/identities", response_model=schemas.IdentityRead, status_code=status.HTTP_201_CREATED)
def provision_identity(
    payload: schemas.IdentityCreate,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    identity, profile = crud.provision_identity(session, payload.email, payload.id)
    return schemas.IdentityRead(
        id=identity.id,
        email=identity.email,
        created_at=identity.created_at,
        profile=schemas.ProfileRead.model_validate(profile, from_attributes=True),
    )


@app.post("/auth/identities/{identity_id}/token", response_model=schemas.SessionToken)
def issue_session_token(
    identity_id: uuid.UUID,
    _: AccessGuard,
    session: Session = Depends(get_session),
):
    identity = crud.get_identity(session, identity_id)
    profile = crud.get_profile(session, identity_id)
    return schemas.SessionToken(access_token=create_session_token(identity, profile), role=profile.role)


@app.get("/profiles", response_model=List[schemas.ProfileRead])
def list_profiles(_: CurrentPrincipal, session: Session = Depends(get_session)):
    return crud.list_profiles(session)


@app.get("/profiles/me", response_model=schemas.ProfileRead)
def get_own_profile(principal: CurrentPrincipal, session: Session = Depends(get_session)):
    return crud.get_profile(session, principal.identity_id)


@app.get("/profiles/{profile_id}", response_model=schemas.ProfileRead)
def get_profile(profile_id: uuid.UUID, _: CurrentPrincipal, session: Session = Depends(get_session)):
    return crud.get_profile(session, profile_id)


@app.patch("/profiles/{profile_id}", response_model=schemas.ProfileRead)
def update_profile(
    profile_id: uuid.UUID,
    payload: schemas.ProfileUpdate,
    principal: CurrentPrincipal,
    session: Session = Depends(get_session),
):
    if principal.identity_id != profile_id:
        raise AuthorizationDenied("Profiles can only be updated by their owner")
    profile = crud.get_profile(session, profile_id)
    return crud.update_profile(session, profile, payload.model_dump(exclude_unset=True))


# -------------------------
# Realtime
# -------------------------

@app.websocket("/realtime")
async def realtime(websocket: WebSocket, table: Optional[str] = None):
    # subscribe before accepting so no write after the handshake is missed
    subscription = change_feed.subscribe(table=table, loop=asyncio.get_running_loop())

    async def pump() -> None:
        while True:
            event = await subscription.queue.get()
            if event is None:
                await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason="subscriber fell behind")
                return
            await websocket.send_json(event)

    async def listen() -> None:
        # clients only listen; reading is how a disconnect is noticed
        while True:
            await websocket.receive_text()

    tasks = []
    try:
        await websocket.accept()
        tasks = [asyncio.create_task(pump()), asyncio.create_task(listen())]
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, WebSocketDisconnect):
                logger.warning("realtime subscriber failed: %r", result)
        change_feed.unsubscribe(subscription)
