import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from printshop.models import MoveReason
from printshop.schemas.order_item import ComponentIn


class OperationType(str, enum.Enum):
    SPEND = "spend"
    ADD = "add"
    ADJUST = "adjust"


class TransactionOperation(BaseModel):
    """Операция пакета. spend/add — quantity; adjust — new_quantity (установка остатка)."""
    type: OperationType
    material_id: int
    quantity: Optional[Decimal] = None
    new_quantity: Optional[Decimal] = None
    # Не задано — по типу: warehouse spend / warehouse add / manual adjust
    reason: Optional[MoveReason] = None
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    # Пишется в аудит пакетных операций как есть
    metadata: Optional[dict] = None


class TransactionRequest(BaseModel):
    operations: List[TransactionOperation] = Field(..., min_length=1)


class TransactionResultResponse(BaseModel):
    index: int
    material_id: int
    type: OperationType
    old_quantity: Decimal
    new_quantity: Decimal
    delta: Decimal
    move_id: Optional[int] = None
    reason: MoveReason
    timestamp: datetime


class MaterialRequirement(BaseModel):
    material_id: int
    quantity: Decimal = Field(..., gt=0)


class AvailabilityRequest(BaseModel):
    requirements: List[MaterialRequirement] = Field(..., min_length=1)


class ShortfallResponse(BaseModel):
    material_id: int
    required: Decimal
    available: Decimal
    shortfall: Decimal


class AvailabilityReportResponse(BaseModel):
    available: bool
    unavailable: List[ShortfallResponse]


class AutoDeductionItem(BaseModel):
    type: str
    params: dict = Field(default_factory=dict)
    quantity: int = Field(default=1, ge=1)
    components: Optional[List[ComponentIn]] = None


class AutoDeductionRequest(BaseModel):
    items: List[AutoDeductionItem] = Field(..., min_length=1)


class DeductedMaterial(BaseModel):
    material_id: int
    material_name: str
    quantity: Decimal


class AutoDeductionResponse(BaseModel):
    order_id: int
    deducted_materials: List[DeductedMaterial]
    warnings: List[str]


class AuditLogResponse(BaseModel):
    id: int
    operation_type: OperationType
    material_id: int
    quantity: Decimal
    old_quantity: Decimal
    new_quantity: Decimal
    reason: MoveReason
    move_id: Optional[int] = None
    batch_index: int
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="meta")
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
