"""Состав позиции: список (материал, расход на единицу).

Источник — явный список components у позиции или пресет product_materials
по (type, description). Если ни того ни другого нет, позиция не требует
материалов: это отдельный, явный случай (ZERO_REQUIREMENT), а не пустой
результат неудачного поиска.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.exceptions import InvalidInput, NotFound
from printshop.core.logging_config import get_logger
from printshop.models import Material, ProductMaterial
from printshop.services.quantities import required_quantity, to_decimal

logger = get_logger(__name__)


class CompositionSource(str, enum.Enum):
    PRESET = "preset"
    EXPLICIT = "explicit"
    NONE = "none"


@dataclass(frozen=True)
class Component:
    material_id: int
    qty_per_item: Decimal


@dataclass(frozen=True)
class Composition:
    components: tuple[Component, ...]
    source: CompositionSource

    @property
    def is_zero_requirement(self) -> bool:
        return self.source is CompositionSource.NONE

    def requirements(self, units) -> list[tuple[int, Decimal]]:
        """Потребность по материалам на units единиц, в порядке состава (округление вверх)."""
        out = []
        for c in self.components:
            need = required_quantity(c.qty_per_item, units)
            if need > 0:
                out.append((c.material_id, need))
        return out

    def to_snapshot(self) -> dict:
        return {
            "source": self.source.value,
            "components": [
                {"material_id": c.material_id, "qty_per_item": str(c.qty_per_item)}
                for c in self.components
            ],
        }

    @classmethod
    def from_snapshot(cls, snapshot: dict) -> "Composition":
        components = tuple(
            Component(int(c["material_id"]), to_decimal(c["qty_per_item"]))
            for c in snapshot.get("components") or []
        )
        if not components:
            return ZERO_REQUIREMENT
        return cls(components, CompositionSource(snapshot.get("source") or CompositionSource.EXPLICIT.value))


ZERO_REQUIREMENT = Composition((), CompositionSource.NONE)


async def resolve(db: AsyncSession, product_type: str, description: str) -> Composition:
    """Состав по пресету. Пресета нет — позиция без материалов."""
    q = (
        select(ProductMaterial.material_id, ProductMaterial.qty_per_item)
        .where(
            ProductMaterial.preset_category == product_type,
            ProductMaterial.preset_description == (description or ""),
        )
        .order_by(ProductMaterial.id)
    )
    rows = (await db.execute(q)).all()
    if not rows:
        logger.debug("Пресет состава для %s / %s не настроен — позиция без материалов", product_type, description)
        return ZERO_REQUIREMENT
    return Composition(
        tuple(Component(r.material_id, to_decimal(r.qty_per_item)) for r in rows),
        CompositionSource.PRESET,
    )


async def list_presets(
    db: AsyncSession,
    product_type: Optional[str] = None,
    description: Optional[str] = None,
) -> list[ProductMaterial]:
    q = select(ProductMaterial).order_by(
        ProductMaterial.preset_category, ProductMaterial.preset_description, ProductMaterial.id
    )
    if product_type is not None:
        q = q.where(ProductMaterial.preset_category == product_type)
    if description is not None:
        q = q.where(ProductMaterial.preset_description == description)
    r = await db.execute(q)
    return list(r.scalars().all())


async def resolve_explicit(db: AsyncSession, components: Iterable) -> Composition:
    """Явный состав: каждый материал должен существовать, расход на единицу > 0."""
    parsed = []
    for c in components:
        qty = to_decimal(c.qty_per_item)
        if qty <= 0:
            raise InvalidInput(f"Расход материала ID={c.material_id} на единицу должен быть больше нуля")
        parsed.append(Component(int(c.material_id), qty))
    if not parsed:
        raise InvalidInput("Пустой список материалов")
    ids = {c.material_id for c in parsed}
    r = await db.execute(select(Material.id).where(Material.id.in_(ids)))
    existing = set(r.scalars().all())
    for c in parsed:
        if c.material_id not in existing:
            raise NotFound("material", c.material_id)
    return Composition(tuple(parsed), CompositionSource.EXPLICIT)


async def resolve_for_item(
    db: AsyncSession,
    product_type: str,
    params: Optional[dict],
    components: Optional[Iterable] = None,
) -> Composition:
    """Явные components важнее пресета."""
    components = list(components or [])
    if components:
        return await resolve_explicit(db, components)
    description = (params or {}).get("description") or ""
    return await resolve(db, product_type, description)
