"""Резервы материалов под заказы."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import get_db
from printshop.models import ReservationStatus
from printshop.schemas.reservation import (
    CleanupResponse,
    ReservationCancel,
    ReservationCreate,
    ReservationHistoryResponse,
    ReservationResponse,
    ReservationUpdate,
)
from printshop.services import reservation_service

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_reservation(
    body: ReservationCreate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.create(
        db,
        body.material_id,
        body.quantity_reserved,
        order_id=body.order_id,
        expires_at=body.expires_at,
        notes=body.notes,
        user_id=user_id,
    )


@router.get("", response_model=list[ReservationResponse])
async def list_reservations(
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    status: Optional[ReservationStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.list_reservations(
        db, material_id=material_id, order_id=order_id, status=status, limit=limit
    )


@router.post("/cleanup-expired", response_model=CleanupResponse)
async def cleanup_expired(db: AsyncSession = Depends(get_db)):
    """Перевести просроченные резервы в expired (обычно вызывается по расписанию)."""
    return CleanupResponse(expired=await reservation_service.cleanup_expired(db))


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(reservation_id: int, db: AsyncSession = Depends(get_db)):
    return await reservation_service.get(db, reservation_id)


@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    reservation_id: int,
    body: ReservationUpdate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.update(
        db,
        reservation_id,
        quantity=body.quantity_reserved,
        expires_at=body.expires_at,
        notes=body.notes,
        user_id=user_id,
    )


@router.post("/{reservation_id}/fulfill", response_model=ReservationResponse)
async def fulfill_reservation(
    reservation_id: int,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Выполнить резерв: списать материал со склада."""
    return await reservation_service.fulfill(db, reservation_id, user_id=user_id)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    body: Optional[ReservationCancel] = None,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    reason = body.reason if body else None
    return await reservation_service.cancel(db, reservation_id, reason=reason, user_id=user_id)


@router.get("/{reservation_id}/history", response_model=list[ReservationHistoryResponse])
async def reservation_history(reservation_id: int, db: AsyncSession = Depends(get_db)):
    return await reservation_service.history(db, reservation_id)
