"""Движение материала: неизменяемая запись журнала (знаковое изменение остатка)."""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from printshop.core.database import Base


class MoveDirection(str, enum.Enum):
    CONSUMPTION = "consumption"  # только delta < 0, с проверкой min_quantity
    INCOMING = "incoming"        # только delta > 0: приход и возвраты
    CORRECTION = "correction"    # любой знак: ручная корректировка


class MoveReason(str, enum.Enum):
    INITIAL_STOCK = "initial stock"
    ORDER_ADD_ITEM = "order add item"
    ORDER_DELETE_ITEM = "order delete item"
    ORDER_UPDATE_QTY_PLUS = "order update qty +"
    ORDER_UPDATE_QTY_MINUS = "order update qty -"
    MANUAL_ADJUST = "manual adjust"
    RESERVATION_FULFILL = "reservation fulfill"
    WAREHOUSE_SPEND = "warehouse spend"
    WAREHOUSE_ADD = "warehouse add"
    AUTO_DEDUCTION = "auto deduction"

    @property
    def direction(self) -> MoveDirection:
        if self in CONSUMPTION_REASONS:
            return MoveDirection.CONSUMPTION
        if self is MoveReason.MANUAL_ADJUST:
            return MoveDirection.CORRECTION
        return MoveDirection.INCOMING

    @property
    def is_consumption(self) -> bool:
        return self.direction is MoveDirection.CONSUMPTION

    def allows(self, delta) -> bool:
        """Согласуется ли знак delta с причиной движения."""
        if self.direction is MoveDirection.CONSUMPTION:
            return delta < 0
        if self.direction is MoveDirection.INCOMING:
            return delta > 0
        return delta != 0


CONSUMPTION_REASONS = frozenset({
    MoveReason.ORDER_ADD_ITEM,
    MoveReason.ORDER_UPDATE_QTY_PLUS,
    MoveReason.RESERVATION_FULFILL,
    MoveReason.WAREHOUSE_SPEND,
    MoveReason.AUTO_DEDUCTION,
})


class MoveImmutableError(Exception):
    pass


class MaterialMove(Base):
    __tablename__ = "material_moves"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id"), nullable=False, index=True)
    # < 0 — расход, > 0 — приход/возврат
    delta: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    reason: Mapped[MoveReason] = mapped_column(Enum(MoveReason), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    material = relationship("Material", back_populates="moves")


@event.listens_for(MaterialMove, "before_update")
def _forbid_move_update(mapper, connection, target):
    raise MoveImmutableError(f"Движение материала ID={target.id} нельзя изменить")


@event.listens_for(MaterialMove, "before_delete")
def _forbid_move_delete(mapper, connection, target):
    raise MoveImmutableError(f"Движение материала ID={target.id} нельзя удалить")
