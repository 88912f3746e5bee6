"""Материал на складе: текущий остаток и необязательный минимальный остаток."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from printshop.core.database import Base

QUANTITY = Numeric(14, 3)


class Material(Base):
    """Остаток меняется только через services.stock_ledger (adjust / set_quantity)."""
    __tablename__ = "materials"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_materials_quantity_non_negative"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="шт", nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, default=Decimal("0"), nullable=False)
    # None — минимального остатка нет
    min_quantity: Mapped[Optional[Decimal]] = mapped_column(QUANTITY, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    moves = relationship("MaterialMove", back_populates="material")
    reservations = relationship("MaterialReservation", back_populates="material")
