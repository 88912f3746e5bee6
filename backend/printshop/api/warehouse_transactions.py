"""Пакетные складские операции, проверка наличия и автосписание по заказу."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import get_db
from printshop.schemas.material import MoveResponse
from printshop.schemas.transaction import (
    AuditLogResponse,
    AutoDeductionRequest,
    AutoDeductionResponse,
    AvailabilityReportResponse,
    AvailabilityRequest,
    DeductedMaterial,
    OperationType,
    ShortfallResponse,
    TransactionRequest,
    TransactionResultResponse,
)
from printshop.services import auto_deduction_service, stock_ledger, transaction_service

router = APIRouter(prefix="/warehouse-transactions", tags=["warehouse-transactions"])


@router.post("/execute", response_model=list[TransactionResultResponse])
async def execute(body: TransactionRequest, db: AsyncSession = Depends(get_db)):
    """Выполнить пакет операций атомарно, при ошибке любой откатываются все."""
    results = await transaction_service.execute(db, body.operations)
    return [
        TransactionResultResponse(
            index=r.index,
            material_id=r.material_id,
            type=r.type,
            old_quantity=r.old_quantity,
            new_quantity=r.new_quantity,
            delta=r.delta,
            move_id=r.move_id,
            reason=r.reason,
            timestamp=r.timestamp,
        )
        for r in results
    ]


@router.post("/check-availability", response_model=AvailabilityReportResponse)
async def check_availability(body: AvailabilityRequest, db: AsyncSession = Depends(get_db)):
    report = await transaction_service.check_availability(db, body.requirements)
    return AvailabilityReportResponse(
        available=report.available,
        unavailable=[
            ShortfallResponse(
                material_id=s.material_id,
                required=s.required,
                available=s.available,
                shortfall=s.shortfall,
            )
            for s in report.unavailable
        ],
    )


@router.post("/auto-deduct/{order_id}", response_model=AutoDeductionResponse)
async def auto_deduct(
    order_id: int,
    body: AutoDeductionRequest,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    result = await auto_deduction_service.deduct_for_order(db, order_id, body.items, user_id=user_id)
    return AutoDeductionResponse(
        order_id=result.order_id,
        deducted_materials=[DeductedMaterial(**d) for d in result.deducted_materials],
        warnings=result.warnings,
    )


@router.get("/history", response_model=list[MoveResponse])
async def history(
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Журнал движений по материалу и/или заказу."""
    return await stock_ledger.list_moves(db, material_id=material_id, order_id=order_id, limit=limit)


@router.get("/audit", response_model=list[AuditLogResponse])
async def audit(
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    operation_type: Optional[OperationType] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Аудит пакетных операций: старый и новый остаток по каждой операции."""
    return await transaction_service.list_audit(
        db, material_id=material_id, order_id=order_id, operation_type=operation_type, limit=limit
    )
