from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from printshop.models import ReservationAction, ReservationStatus


class ReservationCreate(BaseModel):
    material_id: int
    quantity_reserved: Decimal
    order_id: Optional[int] = None
    # Не задано — срок по умолчанию из настроек (RESERVATION_DEFAULT_TTL_HOURS)
    expires_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class ReservationUpdate(BaseModel):
    quantity_reserved: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class ReservationResponse(BaseModel):
    id: int
    material_id: int
    order_id: Optional[int] = None
    quantity_reserved: Decimal
    status: ReservationStatus
    expires_at: Optional[datetime] = None
    reserved_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReservationHistoryResponse(BaseModel):
    id: int
    reservation_id: int
    action: ReservationAction
    old_quantity: Optional[Decimal] = None
    new_quantity: Optional[Decimal] = None
    changed_by: Optional[int] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CleanupResponse(BaseModel):
    expired: int
