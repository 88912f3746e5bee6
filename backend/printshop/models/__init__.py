from printshop.core.database import Base
from printshop.models.material import Material
from printshop.models.material_move import MaterialMove, MoveDirection, MoveReason, MoveImmutableError
from printshop.models.material_reservation import (
    MaterialReservation,
    ReservationAction,
    ReservationHistory,
    ReservationStatus,
)
from printshop.models.order_item import OrderItem
from printshop.models.product_material import ProductMaterial
from printshop.models.warehouse_audit import WarehouseAuditLog

__all__ = [
    "Base",
    "Material",
    "MaterialMove",
    "MaterialReservation",
    "MoveDirection",
    "MoveImmutableError",
    "MoveReason",
    "OrderItem",
    "ProductMaterial",
    "ReservationAction",
    "ReservationHistory",
    "ReservationStatus",
    "WarehouseAuditLog",
]
