"""Аудит пакетных складских операций: по строке на каждую выполненную операцию пакета."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from printshop.core.database import Base
from printshop.models.material_move import MoveReason
from printshop.models.order_item import JsonType


class WarehouseAuditLog(Base):
    __tablename__ = "warehouse_audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # spend / add / adjust
    operation_type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id"), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    old_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    reason: Mapped[MoveReason] = mapped_column(Enum(MoveReason), nullable=False)
    # None — операция не изменила остаток (adjust на то же значение)
    move_id: Mapped[Optional[int]] = mapped_column(ForeignKey("material_moves.id"), nullable=True)
    batch_index: Mapped[int] = mapped_column(Integer, nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
