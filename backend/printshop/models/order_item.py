"""Позиция заказа. Расход материалов не хранится, а пересчитывается из quantity × состав."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from printshop.core.database import Base

JsonType = JSON().with_variant(JSONB(), "postgresql")


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    params: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    # Состав на момент добавления: {"source": ..., "components": [{material_id, qty_per_item}]}.
    # Изменение количества и удаление работают по нему, а не по текущим пресетам.
    composition: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    printer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sides: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    sheets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    waste: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
