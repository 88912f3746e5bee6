"""Ошибки складского ядра. Обработчик в main.py превращает их в HTTP-ответы."""
from decimal import Decimal
from typing import Any, Optional

_NOT_FOUND_MESSAGES = {
    "material": "Материал ID={id} не найден",
    "order_item": "Позиция ID={id} не найдена",
    "reservation": "Резерв ID={id} не найден",
}


class WarehouseError(Exception):
    code = "warehouse_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.code}


class NotFound(WarehouseError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        template = _NOT_FOUND_MESSAGES.get(entity, entity + " ID={id} не найден")
        super().__init__(template.format(id=entity_id))

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update({"entity": self.entity, "entity_id": self.entity_id})
        return out


class InsufficientStock(WarehouseError):
    """Списание или резерв нарушили бы неотрицательность остатка или min_quantity."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        material_id: int,
        material_name: str,
        required: Decimal,
        available: Decimal,
        floor: Optional[Decimal] = None,
    ):
        self.material_id = material_id
        self.material_name = material_name
        self.required = required
        self.available = available
        self.floor = floor
        message = (
            f"Недостаточно материала «{material_name}» (ID={material_id}): "
            f"требуется {required}, доступно {available}"
        )
        if floor is not None:
            message += f", минимальный остаток {floor}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update({
            "material_id": self.material_id,
            "required": str(self.required),
            "available": str(self.available),
            "floor": None if self.floor is None else str(self.floor),
        })
        return out


class InvalidInput(WarehouseError):
    code = "invalid_input"
    status_code = 400


class ConflictDuringBatch(WarehouseError):
    """Одна из операций пакета не прошла, весь пакет откатен."""

    code = "batch_conflict"
    status_code = 409

    def __init__(self, index: int, operation_type: str, cause: WarehouseError):
        self.index = index
        self.operation_type = operation_type
        self.cause = cause
        super().__init__(f"Операция #{index} ({operation_type}) не выполнена: {cause.message}")

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out.update({"operation_index": self.index, "cause": self.cause.to_dict()})
        return out
