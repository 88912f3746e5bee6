"""Складской журнал: единственная точка изменения остатков материалов.

Любое изменение Material.quantity сопровождается ровно одной записью
MaterialMove с тем же знаковым delta, в той же транзакции. Строка материала
читается под блокировкой (SELECT ... FOR UPDATE), поэтому два параллельных
списания не пройдут проверку по одному и тому же устаревшему остатку.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import atomic
from printshop.core.exceptions import InsufficientStock, InvalidInput, NotFound
from printshop.core.logging_config import get_logger
from printshop.models import Material, MaterialMove, MoveDirection, MoveReason
from printshop.services.quantities import to_decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    material_id: int
    quantity: Decimal
    moves_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.quantity - self.moves_total

    @property
    def consistent(self) -> bool:
        return self.difference == 0


async def get_material(db: AsyncSession, material_id: int) -> Material:
    r = await db.execute(select(Material).where(Material.id == material_id))
    material = r.scalar_one_or_none()
    if material is None:
        raise NotFound("material", material_id)
    return material


async def lock_material(db: AsyncSession, material_id: int) -> Material:
    """Материал под блокировкой строки, значения перечитаны из БД."""
    q = (
        select(Material)
        .where(Material.id == material_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    material = (await db.execute(q)).scalar_one_or_none()
    if material is None:
        raise NotFound("material", material_id)
    return material


def check_direction(reason: MoveReason, delta: Decimal) -> None:
    """Причина движения должна соответствовать знаку delta: расход только вниз,
    приход и возвраты только вверх."""
    if not reason.allows(delta):
        raise InvalidInput(
            f"Причина «{reason.value}» не допускает изменение остатка на {delta}"
        )


def check_spend(material: Material, amount: Decimal) -> None:
    """Можно ли списать amount: остаток не уходит в минус и не опускается ниже min_quantity."""
    remaining = material.quantity - amount
    if remaining < 0:
        raise InsufficientStock(material.id, material.name, amount, material.quantity)
    floor = material.min_quantity
    if floor is not None and remaining < floor:
        raise InsufficientStock(material.id, material.name, amount, material.quantity, floor)


async def _write_move(
    db: AsyncSession,
    material: Material,
    delta: Decimal,
    reason: MoveReason,
    order_id: Optional[int],
    user_id: Optional[int],
) -> MaterialMove:
    check_direction(reason, delta)
    material.quantity = material.quantity + delta
    move = MaterialMove(
        material_id=material.id,
        delta=delta,
        reason=reason,
        order_id=order_id,
        user_id=user_id,
    )
    db.add(material)
    db.add(move)
    await db.flush()
    return move


async def adjust(
    db: AsyncSession,
    material_id: int,
    delta,
    reason: MoveReason,
    order_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> MaterialMove:
    """Изменить остаток на delta и записать движение (атомарно).

    Любое уменьшение проверяется по min_quantity; обойти минимальный остаток
    можно только установкой остатка через set_quantity."""
    delta = to_decimal(delta)
    if delta == 0:
        raise InvalidInput("Изменение остатка не может быть нулевым")
    check_direction(reason, delta)
    async with atomic(db):
        material = await lock_material(db, material_id)
        if delta < 0:
            check_spend(material, -delta)
        move = await _write_move(db, material, delta, reason, order_id, user_id)
    logger.info(
        "Движение материала id=%s: delta=%s reason=%s order_id=%s остаток=%s",
        material_id, delta, reason.value, order_id, material.quantity,
    )
    return move


async def set_quantity(
    db: AsyncSession,
    material_id: int,
    new_quantity,
    reason: MoveReason = MoveReason.MANUAL_ADJUST,
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
) -> Optional[MaterialMove]:
    """Установить остаток (ручная корректировка). Минимальный остаток не проверяется.
    Если остаток не изменился — движения нет, возвращается None."""
    new_quantity = to_decimal(new_quantity)
    if new_quantity < 0:
        raise InvalidInput("Остаток не может быть отрицательным")
    if reason.direction is not MoveDirection.CORRECTION:
        raise InvalidInput(f"Установка остатка возможна только с причиной корректировки, а не «{reason.value}»")
    async with atomic(db):
        material = await lock_material(db, material_id)
        delta = new_quantity - material.quantity
        move = None
        if delta != 0:
            move = await _write_move(db, material, delta, reason, order_id, user_id)
    if move is not None:
        logger.info("Корректировка остатка материала id=%s: %s (delta=%s)", material_id, new_quantity, delta)
    return move


async def get_quantity(db: AsyncSession, material_id: int) -> Decimal:
    r = await db.execute(select(Material.quantity).where(Material.id == material_id))
    row = r.one_or_none()
    if row is None:
        raise NotFound("material", material_id)
    return to_decimal(row[0])


async def get_min_quantity(db: AsyncSession, material_id: int) -> Optional[Decimal]:
    r = await db.execute(select(Material.min_quantity).where(Material.id == material_id))
    row = r.one_or_none()
    if row is None:
        raise NotFound("material", material_id)
    return None if row[0] is None else to_decimal(row[0])


async def create_material(
    db: AsyncSession,
    name: str,
    unit: str = "шт",
    quantity=Decimal("0"),
    min_quantity=None,
    user_id: Optional[int] = None,
) -> Material:
    """Завести материал. Начальный остаток записывается движением initial stock,
    так что остаток всегда равен сумме движений."""
    quantity = to_decimal(quantity)
    if quantity < 0:
        raise InvalidInput("Начальный остаток не может быть отрицательным")
    if min_quantity is not None:
        min_quantity = to_decimal(min_quantity)
        if min_quantity < 0:
            raise InvalidInput("Минимальный остаток не может быть отрицательным")
    async with atomic(db):
        material = Material(name=name, unit=unit, quantity=Decimal("0"), min_quantity=min_quantity)
        db.add(material)
        await db.flush()
        if quantity > 0:
            await _write_move(db, material, quantity, MoveReason.INITIAL_STOCK, None, user_id)
    logger.info("Создан материал id=%s «%s», остаток %s", material.id, name, quantity)
    return material


async def list_materials(db: AsyncSession, limit: int = 500) -> list[Material]:
    r = await db.execute(select(Material).order_by(Material.name).limit(limit))
    return list(r.scalars().all())


async def list_moves(
    db: AsyncSession,
    material_id: Optional[int] = None,
    order_id: Optional[int] = None,
    limit: int = 100,
) -> list[MaterialMove]:
    """История движений, новые сверху."""
    q = select(MaterialMove).order_by(MaterialMove.id.desc()).limit(limit)
    if material_id is not None:
        q = q.where(MaterialMove.material_id == material_id)
    if order_id is not None:
        q = q.where(MaterialMove.order_id == order_id)
    r = await db.execute(q)
    return list(r.scalars().all())


async def reconcile(db: AsyncSession, material_id: int) -> ReconcileResult:
    """Сверка: остаток должен совпадать с суммой всех движений материала."""
    quantity = await get_quantity(db, material_id)
    r = await db.execute(
        select(func.coalesce(func.sum(MaterialMove.delta), 0)).where(MaterialMove.material_id == material_id)
    )
    result = ReconcileResult(material_id, quantity, to_decimal(r.scalar_one() or 0))
    if not result.consistent:
        logger.warning(
            "Расхождение остатка материала id=%s: остаток %s, сумма движений %s",
            material_id, result.quantity, result.moves_total,
        )
    return result
