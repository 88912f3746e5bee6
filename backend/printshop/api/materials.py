"""Склад материалов: остатки, корректировки, журнал движений, сверка."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import get_db
from printshop.schemas.material import (
    AdjustBody,
    AvailabilityResponse,
    MaterialCreate,
    MaterialResponse,
    MoveResponse,
    ReconcileResponse,
    SetQuantityBody,
)
from printshop.services import reservation_service, stock_ledger

router = APIRouter(prefix="/materials", tags=["materials"])


@router.get("", response_model=list[MaterialResponse])
async def list_materials(
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
):
    return await stock_ledger.list_materials(db, limit=limit)


@router.post("", response_model=MaterialResponse, status_code=201)
async def create_material(
    body: MaterialCreate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Завести материал с начальным остатком."""
    return await stock_ledger.create_material(
        db, body.name, body.unit, body.quantity, body.min_quantity, user_id=user_id
    )


@router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(material_id: int, db: AsyncSession = Depends(get_db)):
    return await stock_ledger.get_material(db, material_id)


@router.post("/{material_id}/set-quantity")
async def set_quantity(
    material_id: int,
    body: SetQuantityBody,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Ручная корректировка остатка (инвентаризация)."""
    move = await stock_ledger.set_quantity(db, material_id, body.new_quantity, user_id=user_id)
    return {
        "material_id": material_id,
        "quantity": body.new_quantity,
        "move": MoveResponse.model_validate(move) if move is not None else None,
    }


@router.post("/{material_id}/adjust", response_model=MoveResponse)
async def adjust(
    material_id: int,
    body: AdjustBody,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await stock_ledger.adjust(
        db, material_id, body.delta, body.reason, order_id=body.order_id, user_id=user_id
    )


@router.get("/{material_id}/moves", response_model=list[MoveResponse])
async def list_moves(
    material_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    await stock_ledger.get_material(db, material_id)
    return await stock_ledger.list_moves(db, material_id=material_id, limit=limit)


@router.get("/{material_id}/availability", response_model=AvailabilityResponse)
async def availability(material_id: int, db: AsyncSession = Depends(get_db)):
    """Остаток, зарезервировано и доступно (остаток − активные резервы)."""
    quantity = await stock_ledger.get_quantity(db, material_id)
    reserved = await reservation_service.reserved_quantity(db, material_id)
    return AvailabilityResponse(
        material_id=material_id,
        quantity=quantity,
        reserved=reserved,
        available=quantity - reserved,
    )


@router.get("/{material_id}/reconcile", response_model=ReconcileResponse)
async def reconcile(material_id: int, db: AsyncSession = Depends(get_db)):
    result = await stock_ledger.reconcile(db, material_id)
    return ReconcileResponse(
        material_id=result.material_id,
        quantity=result.quantity,
        moves_total=result.moves_total,
        difference=result.difference,
        consistent=result.consistent,
    )
