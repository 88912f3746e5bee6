from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from printshop.models import MoveReason


class MaterialCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    unit: str = Field(default="шт", max_length=32)
    quantity: Decimal = Field(default=Decimal("0"), ge=0, description="Начальный остаток")
    min_quantity: Optional[Decimal] = Field(default=None, ge=0)


class MaterialResponse(BaseModel):
    id: int
    name: str
    unit: str
    quantity: Decimal
    min_quantity: Optional[Decimal] = None

    class Config:
        from_attributes = True


class SetQuantityBody(BaseModel):
    """Ручная корректировка: установить остаток (минимальный остаток не проверяется)."""
    new_quantity: Decimal


class AdjustBody(BaseModel):
    """Изменение остатка на delta. Причина должна соответствовать знаку delta;
    уменьшение проверяется по минимальному остатку при любой причине."""
    delta: Decimal
    reason: MoveReason = MoveReason.MANUAL_ADJUST
    order_id: Optional[int] = None


class MoveResponse(BaseModel):
    id: int
    material_id: int
    delta: Decimal
    reason: MoveReason
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    material_id: int
    quantity: Decimal
    reserved: Decimal
    available: Decimal


class ReconcileResponse(BaseModel):
    material_id: int
    quantity: Decimal
    moves_total: Decimal
    difference: Decimal
    consistent: bool


class ComponentOut(BaseModel):
    material_id: int
    qty_per_item: Decimal


class CompositionResponse(BaseModel):
    """Состав продукта. source=none — позиция без материалов (пресет не настроен)."""
    source: str
    components: list[ComponentOut]


class ProductMaterialResponse(BaseModel):
    id: int
    preset_category: str
    preset_description: str
    material_id: int
    qty_per_item: Decimal

    class Config:
        from_attributes = True
