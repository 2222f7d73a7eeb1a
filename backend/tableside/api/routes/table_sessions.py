"""
Table Sessions API - customer visits, heartbeats and the shared cart
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from tableside.api.routes.errors import http_error
from tableside.core.config import settings
from tableside.core.exceptions import TablesideError
from tableside.core.rate_limit import get_session_or_ip, limiter
from tableside.core.rbac import RequireManager, RequireStaff, UserRole
from tableside.db.session import get_db
from tableside.schemas.table_session import (
    ActivityResponse,
    CartResponse,
    CartUpdate,
    CleanupResponse,
    ForceReleaseRequest,
    OrderSummary,
    TableReleaseResponse,
    TableSessionCreate,
    TableSessionOpened,
    TableSessionResponse,
    TableSessionWithOrders,
)
from tableside.services.realtime_service import ws_manager
from tableside.services.session_cleanup_service import SessionCleanupService
from tableside.services.table_session_service import TableSessionService

logger = logging.getLogger(__name__)

router = APIRouter()


def _scope(current_user) -> Optional[int]:
    """Restaurant a staff member may act on; None means every tenant."""
    if current_user.role == UserRole.OWNER:
        return None
    return current_user.restaurant_id


# Customer endpoints (QR ordering page)
@router.post("", response_model=TableSessionOpened)
@limiter.limit("30/minute")
def open_session(
    request: Request,
    data: TableSessionCreate,
    db: Session = Depends(get_db),
):
    """Join the table's active session, opening one if the table is free"""
    try:
        session, created = TableSessionService(db).get_or_create_active_session(data.table_id)
    except TablesideError as e:
        raise http_error(e)
    return TableSessionOpened(
        **TableSessionResponse.model_validate(session).model_dump(), created=created
    )


@router.get("/active", response_model=List[TableSessionResponse])
@limiter.limit("60/minute")
def list_active_sessions(
    request: Request,
    current_user: RequireManager,
    db: Session = Depends(get_db),
):
    """Active sessions, least recently active first"""
    return SessionCleanupService(db).get_active_sessions(restaurant_id=_scope(current_user))


@router.post("/cleanup", response_model=CleanupResponse)
@limiter.limit("10/minute")
def trigger_cleanup(
    request: Request,
    current_user: RequireManager,
    db: Session = Depends(get_db),
):
    """Run the inactive session cleanup for the caller's restaurant now"""
    logger.info(f"Manual session cleanup triggered by user {current_user.id}")
    return SessionCleanupService(db).cleanup_inactive_sessions(restaurant_id=_scope(current_user))


@router.post("/force-release", response_model=TableReleaseResponse)
@limiter.limit("30/minute")
def force_release(
    request: Request,
    data: ForceReleaseRequest,
    current_user: RequireManager,
    db: Session = Depends(get_db),
):
    """Manager override to free a table; refused while served orders are unpaid"""
    try:
        result = TableSessionService(db).force_release(
            session_id=data.session_id,
            table_id=data.table_id,
            restaurant_id=_scope(current_user),
        )
    except TablesideError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Table {result['table_id']} force-released by user {current_user.id}")
    return result


@router.get("/{session_id}", response_model=TableSessionWithOrders)
@limiter.limit("60/minute")
def get_session(
    request: Request,
    session_id: str,
    db: Session = Depends(get_db),
):
    """Session details with the orders placed during it"""
    try:
        session, orders = TableSessionService(db).get_session_with_orders(session_id)
    except TablesideError as e:
        raise http_error(e)
    return TableSessionWithOrders(
        **TableSessionResponse.model_validate(session).model_dump(),
        orders=[OrderSummary.model_validate(o) for o in orders],
    )


@router.post("/{session_id}/activity", response_model=ActivityResponse)
@limiter.limit(settings.heartbeat_rate_limit, key_func=get_session_or_ip)
def record_activity(
    request: Request,
    session_id: str,
    db: Session = Depends(get_db),
):
    """Heartbeat from the customer's device. Never revives a closed session."""
    active = TableSessionService(db).update_session_activity(session_id)
    return ActivityResponse(session_id=session_id, active=active)


@router.post("/{session_id}/end", response_model=TableSessionResponse)
@limiter.limit("30/minute")
def end_session(
    request: Request,
    session_id: str,
    current_user: RequireStaff,
    db: Session = Depends(get_db),
):
    """Close the session normally (guests paid and left)"""
    service = TableSessionService(db)
    try:
        session = service.get_session(session_id)
        if not current_user.can_access_restaurant(session.restaurant_id):
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return service.end_session(session_id)
    except TablesideError as e:
        raise http_error(e)


# Shared cart
@router.get("/{session_id}/cart", response_model=CartResponse)
@limiter.limit("120/minute")
def get_cart(
    request: Request,
    session_id: str,
    db: Session = Depends(get_db),
):
    items = TableSessionService(db).get_shared_cart(session_id)
    return CartResponse(session_id=session_id, items=items)


@router.put("/{session_id}/cart", response_model=CartResponse)
@limiter.limit("120/minute")
def update_cart(
    request: Request,
    session_id: str,
    data: CartUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Replace the shared cart and push it to every device at the table"""
    cart_items = [item.model_dump() for item in data.items]
    try:
        items = TableSessionService(db).update_shared_cart(session_id, cart_items)
    except TablesideError as e:
        raise http_error(e)
    background_tasks.add_task(ws_manager.broadcast_cart_update, session_id, items)
    return CartResponse(session_id=session_id, items=items)


@router.delete("/{session_id}/cart", response_model=CartResponse)
@limiter.limit("60/minute")
def clear_cart(
    request: Request,
    session_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    if not TableSessionService(db).clear_shared_cart(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    background_tasks.add_task(ws_manager.broadcast_cart_update, session_id, [])
    return CartResponse(session_id=session_id, items=[])
