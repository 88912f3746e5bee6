"""Резервирование материалов.

Резерв удерживает количество под заказ, не меняя остаток на складе:
доступно = остаток − сумма активных резервов. Жизненный цикл:
active → fulfilled (реальное списание через журнал) | cancelled | expired.
Завершённый резерв обратно не открывается.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.config import settings
from printshop.core.database import atomic
from printshop.core.exceptions import InsufficientStock, InvalidInput, NotFound
from printshop.core.logging_config import get_logger
from printshop.models import (
    MaterialReservation,
    MoveReason,
    ReservationAction,
    ReservationHistory,
    ReservationStatus,
)
from printshop.services import stock_ledger
from printshop.services.quantities import to_decimal

logger = get_logger(__name__)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """В БД время хранится в UTC без tzinfo."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _positive_quantity(value) -> Decimal:
    quantity = to_decimal(value)
    if quantity <= 0:
        raise InvalidInput("Количество должно быть больше нуля")
    return quantity


async def _active_reserved(db: AsyncSession, material_id: int, exclude_id: Optional[int] = None) -> Decimal:
    q = select(func.coalesce(func.sum(MaterialReservation.quantity_reserved), 0)).where(
        MaterialReservation.material_id == material_id,
        MaterialReservation.status == ReservationStatus.ACTIVE,
    )
    if exclude_id is not None:
        q = q.where(MaterialReservation.id != exclude_id)
    r = await db.execute(q)
    return to_decimal(r.scalar_one() or 0)


async def reserved_quantity(db: AsyncSession, material_id: int) -> Decimal:
    return await _active_reserved(db, material_id)


async def available_quantity(db: AsyncSession, material_id: int) -> Decimal:
    """Остаток минус активные резервы."""
    quantity = await stock_ledger.get_quantity(db, material_id)
    return quantity - await _active_reserved(db, material_id)


async def _lock_reservation(db: AsyncSession, reservation_id: int) -> MaterialReservation:
    q = (
        select(MaterialReservation)
        .where(MaterialReservation.id == reservation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    reservation = (await db.execute(q)).scalar_one_or_none()
    if reservation is None:
        raise NotFound("reservation", reservation_id)
    return reservation


def _ensure_active(reservation: MaterialReservation) -> None:
    if reservation.status != ReservationStatus.ACTIVE:
        raise InvalidInput(
            f"Резерв ID={reservation.id} в статусе {reservation.status.value}, допустим только active"
        )


def _record(
    db: AsyncSession,
    reservation: MaterialReservation,
    action: ReservationAction,
    old_quantity: Optional[Decimal],
    new_quantity: Optional[Decimal],
    changed_by: Optional[int] = None,
    reason: Optional[str] = None,
) -> None:
    db.add(
        ReservationHistory(
            reservation_id=reservation.id,
            action=action,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            changed_by=changed_by,
            reason=reason,
        )
    )


async def create(
    db: AsyncSession,
    material_id: int,
    quantity,
    order_id: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> MaterialReservation:
    quantity = _positive_quantity(quantity)
    expires_at = _naive_utc(expires_at)
    if expires_at is None and settings.reservation_default_ttl_hours > 0:
        expires_at = datetime.utcnow() + timedelta(hours=settings.reservation_default_ttl_hours)
    async with atomic(db):
        # Блокировка строки материала сериализует параллельные резервы по нему
        material = await stock_ledger.lock_material(db, material_id)
        available = material.quantity - await _active_reserved(db, material_id)
        if quantity > available:
            raise InsufficientStock(material.id, material.name, quantity, available)
        reservation = MaterialReservation(
            material_id=material_id,
            order_id=order_id,
            quantity_reserved=quantity,
            status=ReservationStatus.ACTIVE,
            expires_at=expires_at,
            reserved_by=user_id,
            notes=notes,
        )
        db.add(reservation)
        await db.flush()
        _record(db, reservation, ReservationAction.CREATED, None, quantity, user_id, notes)
        await db.flush()
    logger.info(
        "Создан резерв id=%s: материал id=%s, %s, заказ id=%s",
        reservation.id, material_id, quantity, order_id,
    )
    return reservation


async def update(
    db: AsyncSession,
    reservation_id: int,
    quantity=None,
    expires_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> MaterialReservation:
    """Изменить активный резерв. Увеличение количества проверяется по доступному
    остатку без учёта самого резерва."""
    async with atomic(db):
        reservation = await _lock_reservation(db, reservation_id)
        _ensure_active(reservation)
        old_quantity = reservation.quantity_reserved
        if quantity is not None:
            new_quantity = _positive_quantity(quantity)
            if new_quantity > old_quantity:
                material = await stock_ledger.lock_material(db, reservation.material_id)
                available = material.quantity - await _active_reserved(
                    db, reservation.material_id, exclude_id=reservation.id
                )
                if new_quantity > available:
                    raise InsufficientStock(material.id, material.name, new_quantity, available)
            reservation.quantity_reserved = new_quantity
        if expires_at is not None:
            reservation.expires_at = _naive_utc(expires_at)
        if notes is not None:
            reservation.notes = notes
        db.add(reservation)
        _record(
            db, reservation, ReservationAction.UPDATED, old_quantity, reservation.quantity_reserved, user_id
        )
        await db.flush()
    logger.info("Резерв id=%s обновлён", reservation_id)
    return reservation


async def fulfill(db: AsyncSession, reservation_id: int, user_id: Optional[int] = None) -> MaterialReservation:
    """Выполнить резерв: списать количество со склада. Если списание не прошло
    (остаток уменьшили корректировкой), резерв остаётся active."""
    async with atomic(db):
        reservation = await _lock_reservation(db, reservation_id)
        _ensure_active(reservation)
        await stock_ledger.adjust(
            db,
            reservation.material_id,
            -reservation.quantity_reserved,
            MoveReason.RESERVATION_FULFILL,
            order_id=reservation.order_id,
            user_id=user_id,
        )
        reservation.status = ReservationStatus.FULFILLED
        db.add(reservation)
        _record(
            db, reservation, ReservationAction.FULFILLED,
            reservation.quantity_reserved, reservation.quantity_reserved, user_id,
        )
        await db.flush()
    logger.info("Резерв id=%s выполнен, списано %s", reservation_id, reservation.quantity_reserved)
    return reservation


async def cancel(
    db: AsyncSession,
    reservation_id: int,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
) -> MaterialReservation:
    async with atomic(db):
        reservation = await _lock_reservation(db, reservation_id)
        _ensure_active(reservation)
        reservation.status = ReservationStatus.CANCELLED
        db.add(reservation)
        _record(
            db, reservation, ReservationAction.CANCELLED,
            reservation.quantity_reserved, None, user_id, reason,
        )
        await db.flush()
    logger.info("Резерв id=%s отменён: %s", reservation_id, reason or "—")
    return reservation


async def cleanup_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Перевести просроченные активные резервы в expired. Повторный запуск безопасен."""
    now = _naive_utc(now) or datetime.utcnow()
    async with atomic(db):
        q = (
            select(MaterialReservation)
            .where(
                MaterialReservation.status == ReservationStatus.ACTIVE,
                MaterialReservation.expires_at.isnot(None),
                MaterialReservation.expires_at <= now,
            )
            .order_by(MaterialReservation.id)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        expired = list((await db.execute(q)).scalars().all())
        for reservation in expired:
            reservation.status = ReservationStatus.EXPIRED
            db.add(reservation)
            _record(
                db, reservation, ReservationAction.EXPIRED,
                reservation.quantity_reserved, None, None, "expired",
            )
        await db.flush()
    if expired:
        logger.info("Просрочено резервов: %s", len(expired))
    return len(expired)


async def get(db: AsyncSession, reservation_id: int) -> MaterialReservation:
    r = await db.execute(select(MaterialReservation).where(MaterialReservation.id == reservation_id))
    reservation = r.scalar_one_or_none()
    if reservation is None:
        raise NotFound("reservation", reservation_id)
    return reservation


async def list_reservations(
    db: AsyncSession,
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    status: Optional[ReservationStatus] = None,
    limit: int = 100,
) -> list[MaterialReservation]:
    q = select(MaterialReservation).order_by(MaterialReservation.created_at.desc(), MaterialReservation.id.desc())
    if material_id is not None:
        q = q.where(MaterialReservation.material_id == material_id)
    if order_id is not None:
        q = q.where(MaterialReservation.order_id == order_id)
    if status is not None:
        q = q.where(MaterialReservation.status == status)
    r = await db.execute(q.limit(limit))
    return list(r.scalars().all())


async def history(db: AsyncSession, reservation_id: int) -> list[ReservationHistory]:
    await get(db, reservation_id)
    r = await db.execute(
        select(ReservationHistory)
        .where(ReservationHistory.reservation_id == reservation_id)
        .order_by(ReservationHistory.id)
    )
    return list(r.scalars().all())
