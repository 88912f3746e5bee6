"""Пресеты состава: какие материалы и сколько уходит на единицу продукции."""
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from printshop.core.database import Base


class ProductMaterial(Base):
    """Строка пресета (категория + описание продукта → материал, расход на 1 шт).
    Ведётся внешней админкой, ядро только читает."""
    __tablename__ = "product_materials"
    __table_args__ = (Index("ix_product_materials_preset", "preset_category", "preset_description"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    preset_category: Mapped[str] = mapped_column(String(64), nullable=False)
    preset_description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id"), nullable=False)
    qty_per_item: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
