"""Позиции заказа и расход материалов по ним.

Добавление, изменение количества и удаление позиции — каждое одной
транзакцией вместе с движениями по складу: сначала проверяются все
материалы, потом списываются; при любой ошибке откатывается всё.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import atomic
from printshop.core.exceptions import NotFound
from printshop.core.logging_config import get_logger
from printshop.models import MoveReason, OrderItem
from printshop.schemas.order_item import OrderItemCreate, OrderItemUpdate
from printshop.services import stock_ledger
from printshop.services.composition import Composition, resolve, resolve_for_item

logger = get_logger(__name__)

# Поля, которые можно менять патчем (quantity — с пересчётом материалов)
_PATCH_FIELDS = ("price", "quantity", "printer_id", "sides", "sheets", "waste")
_NULLABLE_FIELDS = frozenset(("printer_id",))


def _clicks(sheets: int, sides: int) -> int:
    # SRA3: одна сторона — 2 клика, две — 4
    return max(0, sheets) * (max(1, sides) * 2)


async def _get_item(db: AsyncSession, order_id: int, item_id: int, lock: bool = False) -> Optional[OrderItem]:
    q = select(OrderItem).where(OrderItem.id == item_id, OrderItem.order_id == order_id)
    if lock:
        q = q.with_for_update().execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def get_item(db: AsyncSession, order_id: int, item_id: int) -> OrderItem:
    item = await _get_item(db, order_id, item_id)
    if item is None:
        raise NotFound("order_item", item_id)
    return item


async def list_items(db: AsyncSession, order_id: int) -> list[OrderItem]:
    r = await db.execute(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
    return list(r.scalars().all())


async def item_composition(db: AsyncSession, item: OrderItem) -> Composition:
    """Состав, с которым позиция была добавлена. Для старых строк без снимка —
    params.components, затем пресет."""
    if item.composition is not None:
        return Composition.from_snapshot(item.composition)
    params = item.params or {}
    if params.get("components"):
        return Composition.from_snapshot({"source": "explicit", "components": params["components"]})
    return await resolve(db, item.type, params.get("description") or "")


async def _check_requirements(db: AsyncSession, requirements) -> None:
    """Проверить все материалы до первого списания; ошибка называет первый неподходящий."""
    for material_id, need in requirements:
        material = await stock_ledger.lock_material(db, material_id)
        stock_ledger.check_spend(material, need)


async def _spend(db, requirements, reason, order_id, user_id) -> None:
    await _check_requirements(db, requirements)
    for material_id, need in requirements:
        await stock_ledger.adjust(db, material_id, -need, reason, order_id=order_id, user_id=user_id)


async def _give_back(db, requirements, reason, order_id, user_id) -> None:
    for material_id, amount in requirements:
        await stock_ledger.adjust(db, material_id, amount, reason, order_id=order_id, user_id=user_id)


async def add_item(
    db: AsyncSession,
    order_id: int,
    data: OrderItemCreate,
    user_id: Optional[int] = None,
) -> OrderItem:
    quantity = max(1, data.quantity)
    async with atomic(db):
        composition = await resolve_for_item(db, data.type, data.params, data.components)
        if composition.is_zero_requirement:
            logger.info("Позиция %s / %s не требует материалов", data.type, data.params.get("description"))
        else:
            await _spend(db, composition.requirements(quantity), MoveReason.ORDER_ADD_ITEM, order_id, user_id)

        params = dict(data.params)
        if data.components:
            params["components"] = composition.to_snapshot()["components"]
        sides = max(1, data.sides)
        sheets = max(0, data.sheets)
        item = OrderItem(
            order_id=order_id,
            type=data.type,
            params=params,
            composition=composition.to_snapshot(),
            price=data.price,
            quantity=quantity,
            printer_id=data.printer_id,
            sides=sides,
            sheets=sheets,
            waste=max(0, data.waste),
            clicks=_clicks(sheets, sides),
        )
        db.add(item)
        await db.flush()
        await db.refresh(item)
    logger.info("Добавлена позиция id=%s в заказ id=%s (%s × %s)", item.id, order_id, data.type, quantity)
    return item


async def delete_item(
    db: AsyncSession,
    order_id: int,
    item_id: int,
    user_id: Optional[int] = None,
) -> bool:
    """Удалить позицию и вернуть материалы на склад. Позиции нет — ничего не делаем (False)."""
    async with atomic(db):
        item = await _get_item(db, order_id, item_id, lock=True)
        if item is None:
            logger.info("Позиция id=%s заказа id=%s уже удалена", item_id, order_id)
            return False
        composition = await item_composition(db, item)
        await _give_back(
            db, composition.requirements(max(1, item.quantity)), MoveReason.ORDER_DELETE_ITEM, order_id, user_id
        )
        await db.delete(item)
        await db.flush()
    logger.info("Удалена позиция id=%s заказа id=%s", item_id, order_id)
    return True


def _apply_patch(item: OrderItem, changes: dict) -> None:
    for field in _PATCH_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if value is None and field not in _NULLABLE_FIELDS:
            continue
        setattr(item, field, value)
    item.clicks = _clicks(item.sheets, item.sides)


async def update_item(
    db: AsyncSession,
    order_id: int,
    item_id: int,
    patch: OrderItemUpdate,
    user_id: Optional[int] = None,
) -> OrderItem:
    """Изменить позицию. Материалы двигаются только при изменении quantity:
    на прирост — списание с проверкой минимального остатка, на уменьшение — возврат."""
    changes = patch.model_dump(exclude_unset=True)
    async with atomic(db):
        item = await _get_item(db, order_id, item_id, lock=True)
        if item is None:
            raise NotFound("order_item", item_id)
        old_quantity = item.quantity or 1
        if changes.get("quantity") is not None:
            changes["quantity"] = max(1, changes["quantity"])
        new_quantity = changes.get("quantity") or old_quantity
        delta = new_quantity - old_quantity
        if delta:
            composition = await item_composition(db, item)
            if delta > 0:
                await _spend(
                    db, composition.requirements(delta), MoveReason.ORDER_UPDATE_QTY_PLUS, order_id, user_id
                )
            else:
                await _give_back(
                    db, composition.requirements(-delta), MoveReason.ORDER_UPDATE_QTY_MINUS, order_id, user_id
                )
        _apply_patch(item, changes)
        db.add(item)
        await db.flush()
    logger.info("Позиция id=%s заказа id=%s обновлена (количество %s → %s)", item_id, order_id, old_quantity, new_quantity)
    return item
