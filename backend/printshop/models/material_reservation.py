"""Резерв материала под будущий заказ (остаток на складе не меняет)."""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from printshop.core.database import Base


class ReservationStatus(str, enum.Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReservationAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class MaterialReservation(Base):
    __tablename__ = "material_reservations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id"), nullable=False, index=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    quantity_reserved: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus), default=ReservationStatus.ACTIVE, nullable=False, index=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    reserved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    material = relationship("Material", back_populates="reservations")


class ReservationHistory(Base):
    """История резерва: по строке на каждое изменение, только добавление."""
    __tablename__ = "material_reservation_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(
        ForeignKey("material_reservations.id"), nullable=False, index=True
    )
    action: Mapped[ReservationAction] = mapped_column(Enum(ReservationAction), nullable=False)
    old_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3), nullable=True)
    new_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3), nullable=True)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
