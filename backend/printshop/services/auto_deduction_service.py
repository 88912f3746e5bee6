"""Автоматическое списание материалов на весь заказ (при создании заказа).

Потребности всех позиций суммируются по материалам и списываются одним
пакетом: не хватает хотя бы одного материала — не списывается ничего.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import atomic
from printshop.core.logging_config import get_logger
from printshop.models import Material, MoveReason
from printshop.schemas.transaction import AutoDeductionItem, OperationType, TransactionOperation
from printshop.services import transaction_service
from printshop.services.composition import resolve_for_item

logger = get_logger(__name__)


@dataclass
class DeductionResult:
    order_id: int
    deducted_materials: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


async def collect_requirements(db: AsyncSession, items: Sequence[AutoDeductionItem]) -> dict[int, Decimal]:
    """Потребность заказа по материалам (в порядке первого появления)."""
    grouped: dict[int, Decimal] = {}
    for item in items:
        composition = await resolve_for_item(db, item.type, item.params, item.components)
        for material_id, need in composition.requirements(max(1, item.quantity)):
            grouped[material_id] = grouped.get(material_id, Decimal("0")) + need
    return grouped


def _spend_operations(order_id: int, grouped: dict[int, Decimal], user_id: Optional[int]) -> list[TransactionOperation]:
    return [
        TransactionOperation(
            type=OperationType.SPEND,
            material_id=material_id,
            quantity=quantity,
            reason=MoveReason.AUTO_DEDUCTION,
            order_id=order_id,
            user_id=user_id,
        )
        for material_id, quantity in grouped.items()
    ]


async def deduct_for_order(
    db: AsyncSession,
    order_id: int,
    items: Sequence[AutoDeductionItem],
    user_id: Optional[int] = None,
) -> DeductionResult:
    result = DeductionResult(order_id=order_id)
    async with atomic(db):
        grouped = await collect_requirements(db, items)
        if not grouped:
            logger.info("Заказ id=%s не требует материалов", order_id)
            return result
        results = await transaction_service.execute(db, _spend_operations(order_id, grouped, user_id))
        r = await db.execute(select(Material).where(Material.id.in_(list(grouped))))
        materials = {m.id: m for m in r.scalars().all()}

    for res in results:
        material = materials[res.material_id]
        result.deducted_materials.append({
            "material_id": res.material_id,
            "material_name": material.name,
            "quantity": -res.delta,
        })
        if material.min_quantity is not None and res.new_quantity <= material.min_quantity:
            result.warnings.append(
                f"Остаток материала «{material.name}» достиг минимального ({material.min_quantity})"
            )
    logger.info(
        "Автосписание по заказу id=%s: материалов %s, предупреждений %s",
        order_id, len(result.deducted_materials), len(result.warnings),
    )
    return result
