"""Пакетные складские операции: всё или ничего.

Операции spend / add / adjust применяются через складской журнал в одной
транзакции. Если хотя бы одна не прошла (нехватка, неизвестный материал,
неверное количество, причина не того направления), откатывается весь
пакет, а в ошибке указан номер операции. Каждая выполненная операция
записывается в warehouse_audit_log в той же транзакции.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import atomic
from printshop.core.exceptions import ConflictDuringBatch, InvalidInput, WarehouseError
from printshop.core.logging_config import get_logger
from printshop.models import (
    Material,
    MaterialReservation,
    MoveDirection,
    MoveReason,
    ReservationStatus,
    WarehouseAuditLog,
)
from printshop.schemas.transaction import OperationType, TransactionOperation
from printshop.services import stock_ledger
from printshop.services.quantities import to_decimal

logger = get_logger(__name__)

_DEFAULT_REASONS = {
    OperationType.SPEND: MoveReason.WAREHOUSE_SPEND,
    OperationType.ADD: MoveReason.WAREHOUSE_ADD,
    OperationType.ADJUST: MoveReason.MANUAL_ADJUST,
}

# Причина, переданная в операции, должна быть того же направления, что и тип операции
_DIRECTIONS = {
    OperationType.SPEND: MoveDirection.CONSUMPTION,
    OperationType.ADD: MoveDirection.INCOMING,
    OperationType.ADJUST: MoveDirection.CORRECTION,
}


@dataclass(frozen=True)
class TransactionResult:
    index: int
    material_id: int
    type: OperationType
    old_quantity: Decimal
    new_quantity: Decimal
    delta: Decimal
    move_id: Optional[int]
    reason: MoveReason
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class Shortfall:
    material_id: int
    required: Decimal
    available: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.available


@dataclass(frozen=True)
class AvailabilityReport:
    unavailable: list[Shortfall]

    @property
    def available(self) -> bool:
        return not self.unavailable


def _operation_quantity(op: TransactionOperation) -> Decimal:
    if op.quantity is None:
        raise InvalidInput(f"Для операции {op.type.value} нужно указать quantity")
    quantity = to_decimal(op.quantity)
    if quantity <= 0:
        raise InvalidInput("Количество должно быть больше нуля")
    return quantity


def _operation_reason(op: TransactionOperation) -> MoveReason:
    reason = op.reason or _DEFAULT_REASONS[op.type]
    if reason.direction is not _DIRECTIONS[op.type]:
        raise InvalidInput(f"Причина «{reason.value}» недопустима для операции {op.type.value}")
    return reason


async def _execute_operation(db: AsyncSession, index: int, op: TransactionOperation) -> TransactionResult:
    reason = _operation_reason(op)
    material = await stock_ledger.lock_material(db, op.material_id)
    old_quantity = material.quantity
    if op.type is OperationType.SPEND:
        move = await stock_ledger.adjust(
            db, op.material_id, -_operation_quantity(op), reason, order_id=op.order_id, user_id=op.user_id
        )
    elif op.type is OperationType.ADD:
        move = await stock_ledger.adjust(
            db, op.material_id, _operation_quantity(op), reason, order_id=op.order_id, user_id=op.user_id
        )
    else:
        target = op.new_quantity if op.new_quantity is not None else op.quantity
        if target is None:
            raise InvalidInput("Для операции adjust нужно указать new_quantity")
        move = await stock_ledger.set_quantity(
            db, op.material_id, target, reason, user_id=op.user_id, order_id=op.order_id
        )
    delta = move.delta if move is not None else Decimal("0")
    move_id = move.id if move is not None else None
    db.add(
        WarehouseAuditLog(
            operation_type=op.type.value,
            material_id=op.material_id,
            quantity=abs(delta),
            old_quantity=old_quantity,
            new_quantity=old_quantity + delta,
            reason=reason,
            move_id=move_id,
            batch_index=index,
            order_id=op.order_id,
            user_id=op.user_id,
            meta=op.metadata,
        )
    )
    await db.flush()
    return TransactionResult(
        index=index,
        material_id=op.material_id,
        type=op.type,
        old_quantity=old_quantity,
        new_quantity=old_quantity + delta,
        delta=delta,
        move_id=move_id,
        reason=reason,
    )


async def execute(db: AsyncSession, operations: Sequence[TransactionOperation]) -> list[TransactionResult]:
    if not operations:
        raise InvalidInput("Пустой список операций")
    results: list[TransactionResult] = []
    try:
        async with atomic(db):
            for index, op in enumerate(operations):
                try:
                    results.append(await _execute_operation(db, index, op))
                except WarehouseError as e:
                    raise ConflictDuringBatch(index, op.type.value, e) from e
    except ConflictDuringBatch as e:
        logger.warning("Пакет из %s операций откатен: %s", len(operations), e.message)
        raise
    logger.info(
        "Пакет выполнен: %s операций, материалы %s",
        len(results), [r.material_id for r in results],
    )
    return results


async def check_availability(db: AsyncSession, requirements: Sequence) -> AvailabilityReport:
    """Хватит ли материалов с учётом активных резервов. Ничего не меняет."""
    unavailable = []
    for req in requirements:
        required = to_decimal(req.quantity)
        r = await db.execute(select(Material.quantity).where(Material.id == req.material_id))
        row = r.one_or_none()
        if row is None:
            unavailable.append(Shortfall(req.material_id, required, Decimal("0")))
            continue
        reserved = await db.execute(
            select(func.coalesce(func.sum(MaterialReservation.quantity_reserved), 0)).where(
                MaterialReservation.material_id == req.material_id,
                MaterialReservation.status == ReservationStatus.ACTIVE,
            )
        )
        available = to_decimal(row[0]) - to_decimal(reserved.scalar_one() or 0)
        if available < required:
            unavailable.append(Shortfall(req.material_id, required, available))
    return AvailabilityReport(unavailable)


async def list_audit(
    db: AsyncSession,
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    operation_type: Optional[OperationType] = None,
    limit: int = 100,
) -> list[WarehouseAuditLog]:
    """Аудит пакетных операций, новые сверху."""
    q = select(WarehouseAuditLog).order_by(WarehouseAuditLog.id.desc()).limit(limit)
    if material_id is not None:
        q = q.where(WarehouseAuditLog.material_id == material_id)
    if order_id is not None:
        q = q.where(WarehouseAuditLog.order_id == order_id)
    if operation_type is not None:
        q = q.where(WarehouseAuditLog.operation_type == operation_type.value)
    r = await db.execute(q)
    return list(r.scalars().all())
