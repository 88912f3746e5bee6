from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ComponentIn(BaseModel):
    """Материал и его расход на единицу позиции."""
    material_id: int = Field(..., gt=0)
    qty_per_item: Decimal = Field(..., gt=0)


class OrderItemCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=64)
    # params.description — ключ пресета состава вместе с type
    params: dict = Field(default_factory=dict)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(default=1, ge=1)
    printer_id: Optional[int] = None
    sides: int = Field(default=1, ge=1)
    sheets: int = Field(default=0, ge=0)
    waste: int = Field(default=0, ge=0)
    # Явный состав вместо пресета
    components: Optional[List[ComponentIn]] = None


class OrderItemUpdate(BaseModel):
    """Патч позиции: применяются только переданные поля."""
    price: Optional[Decimal] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=1)
    printer_id: Optional[int] = None
    sides: Optional[int] = Field(default=None, ge=1)
    sheets: Optional[int] = Field(default=None, ge=0)
    waste: Optional[int] = Field(default=None, ge=0)


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    type: str
    params: Optional[dict] = None
    composition: Optional[dict] = None
    price: Decimal
    quantity: int
    printer_id: Optional[int] = None
    sides: int
    sheets: int
    waste: int
    clicks: int

    class Config:
        from_attributes = True
