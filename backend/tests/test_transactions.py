"""Пакетные операции, проверка доступности и автосписание по заказу."""
from decimal import Decimal

import pytest

from printshop.core.exceptions import ConflictDuringBatch, InsufficientStock, InvalidInput, NotFound
from printshop.models import MoveReason
from printshop.schemas.order_item import ComponentIn
from printshop.schemas.transaction import (
    AutoDeductionItem,
    MaterialRequirement,
    OperationType,
    TransactionOperation,
)
from printshop.services import auto_deduction_service, reservation_service, transaction_service

pytestmark = pytest.mark.anyio


def _op(type_, material_id, **kwargs):
    return TransactionOperation(type=type_, material_id=material_id, **kwargs)


async def test_batch_is_rolled_back_on_failure(session_maker, make_material, quantity_of, moves_of):
    """A=100, B=5: списать 10 A и 10 B, второе не проходит, A остаётся 100."""
    a = await make_material(name="A", quantity=100)
    b = await make_material(name="B", quantity=5)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [
                _op(OperationType.SPEND, a.id, quantity=10),
                _op(OperationType.SPEND, b.id, quantity=10),
            ])
    assert exc.value.index == 1
    assert isinstance(exc.value.cause, InsufficientStock)
    assert exc.value.to_dict()["operation_index"] == 1
    assert await quantity_of(a.id) == Decimal("100")
    assert await quantity_of(b.id) == Decimal("5")
    assert len(await moves_of(a.id)) == 1


async def test_mixed_batch_results(session_maker, make_material, quantity_of, moves_of):
    paper = await make_material(name="Бумага", quantity=100)
    film = await make_material(name="Плёнка", quantity=10)
    async with session_maker() as db:
        results = await transaction_service.execute(db, [
            _op(OperationType.SPEND, paper.id, quantity=30, order_id=9),
            _op(OperationType.ADD, film.id, quantity=Decimal("2.5")),
            _op(OperationType.ADJUST, paper.id, new_quantity=50, user_id=4),
        ])

    assert [r.index for r in results] == [0, 1, 2]
    spend, add, adjust = results
    assert (spend.old_quantity, spend.new_quantity, spend.delta) == (Decimal("100"), Decimal("70"), Decimal("-30"))
    assert spend.reason == MoveReason.WAREHOUSE_SPEND
    assert add.new_quantity == Decimal("12.5")
    assert add.reason == MoveReason.WAREHOUSE_ADD
    assert (adjust.old_quantity, adjust.new_quantity, adjust.delta) == (Decimal("70"), Decimal("50"), Decimal("-20"))
    assert adjust.reason == MoveReason.MANUAL_ADJUST

    assert await quantity_of(paper.id) == Decimal("50")
    assert await quantity_of(film.id) == Decimal("12.5")
    paper_moves = await moves_of(paper.id)
    assert [m.delta for m in paper_moves[1:]] == [Decimal("-30"), Decimal("-20")]
    assert paper_moves[1].order_id == 9
    assert paper_moves[2].user_id == 4


async def test_adjust_to_same_value_is_recorded_without_move(session_maker, make_material, moves_of):
    paper = await make_material(quantity=40)
    async with session_maker() as db:
        (result,) = await transaction_service.execute(db, [_op(OperationType.ADJUST, paper.id, new_quantity=40)])
    assert result.delta == Decimal("0")
    assert result.move_id is None
    assert len(await moves_of(paper.id)) == 1


async def test_batch_spend_respects_floor(session_maker, make_material, quantity_of):
    paper = await make_material(quantity=100, min_quantity=80)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [_op(OperationType.SPEND, paper.id, quantity=21)])
    assert exc.value.cause.floor == Decimal("80")
    assert await quantity_of(paper.id) == Decimal("100")


async def test_unknown_material_fails_batch(session_maker, make_material, quantity_of):
    paper = await make_material(quantity=100)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [
                _op(OperationType.ADD, paper.id, quantity=1),
                _op(OperationType.SPEND, 404, quantity=1),
            ])
    assert isinstance(exc.value.cause, NotFound)
    assert await quantity_of(paper.id) == Decimal("100")


@pytest.mark.parametrize("op_kwargs", [
    {"type_": OperationType.SPEND, "quantity": Decimal("-1")},
    {"type_": OperationType.ADD},
    {"type_": OperationType.ADJUST, "new_quantity": Decimal("-5")},
])
async def test_invalid_operation_fails_batch(session_maker, make_material, op_kwargs):
    paper = await make_material(quantity=100)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [_op(material_id=paper.id, **op_kwargs)])
    assert exc.value.index == 0
    assert isinstance(exc.value.cause, InvalidInput)


async def test_empty_batch_rejected(session_maker):
    async with session_maker() as db:
        with pytest.raises(InvalidInput):
            await transaction_service.execute(db, [])


async def test_check_availability_counts_reservations(session_maker, make_material):
    paper = await make_material(name="Бумага", quantity=100)
    film = await make_material(name="Плёнка", quantity=10)
    async with session_maker() as db:
        await reservation_service.create(db, paper.id, 70)
        report = await transaction_service.check_availability(db, [
            MaterialRequirement(material_id=paper.id, quantity=31),
            MaterialRequirement(material_id=film.id, quantity=10),
            MaterialRequirement(material_id=404, quantity=1),
        ])
    assert not report.available
    by_material = {s.material_id: s for s in report.unavailable}
    assert set(by_material) == {paper.id, 404}
    assert by_material[paper.id].available == Decimal("30")
    assert by_material[paper.id].shortfall == Decimal("1")
    assert by_material[404].available == Decimal("0")


async def test_check_availability_ok(session_maker, make_material):
    paper = await make_material(quantity=100)
    async with session_maker() as db:
        report = await transaction_service.check_availability(
            db, [MaterialRequirement(material_id=paper.id, quantity=100)]
        )
    assert report.available
    assert report.unavailable == []


async def test_auto_deduction_groups_by_material(
    session_maker, make_material, make_preset, quantity_of, moves_of
):
    paper = await make_material(name="Бумага SRA3", quantity=200, min_quantity=150)
    film = await make_material(name="Плёнка", quantity=50)
    await make_preset("digital_print", "листовки", [(paper.id, Decimal("0.5"))])
    items = [
        AutoDeductionItem(type="digital_print", params={"description": "листовки"}, quantity=7),
        AutoDeductionItem(
            type="lamination", quantity=3,
            components=[ComponentIn(material_id=paper.id, qty_per_item=1), ComponentIn(material_id=film.id, qty_per_item=2)],
        ),
        AutoDeductionItem(type="design", params={"description": "макет"}),
    ]
    async with session_maker() as db:
        result = await auto_deduction_service.deduct_for_order(db, 31, items, user_id=5)

    # ceil(0.5 × 7) = 4, плюс 3 на ламинацию
    assert result.deducted_materials == [
        {"material_id": paper.id, "material_name": "Бумага SRA3", "quantity": Decimal("7")},
        {"material_id": film.id, "material_name": "Плёнка", "quantity": Decimal("6")},
    ]
    assert await quantity_of(paper.id) == Decimal("193")
    assert await quantity_of(film.id) == Decimal("44")
    moves = await moves_of(paper.id)
    assert len(moves) == 2
    assert moves[-1].reason == MoveReason.AUTO_DEDUCTION
    assert moves[-1].order_id == 31
    assert result.warnings == []


async def test_auto_deduction_warns_at_minimum(session_maker, make_material, quantity_of):
    paper = await make_material(name="Бумага", quantity=60, min_quantity=50)
    items = [AutoDeductionItem(type="x", quantity=10, components=[ComponentIn(material_id=paper.id, qty_per_item=1)])]
    async with session_maker() as db:
        result = await auto_deduction_service.deduct_for_order(db, 1, items)
    assert await quantity_of(paper.id) == Decimal("50")
    assert len(result.warnings) == 1
    assert "Бумага" in result.warnings[0]


async def test_auto_deduction_is_all_or_nothing(session_maker, make_material, quantity_of):
    paper = await make_material(name="Бумага", quantity=100)
    film = await make_material(name="Плёнка", quantity=1)
    items = [
        AutoDeductionItem(type="x", quantity=10, components=[ComponentIn(material_id=paper.id, qty_per_item=1)]),
        AutoDeductionItem(type="y", quantity=2, components=[ComponentIn(material_id=film.id, qty_per_item=1)]),
    ]
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await auto_deduction_service.deduct_for_order(db, 1, items)
    assert exc.value.index == 1
    assert await quantity_of(paper.id) == Decimal("100")
    assert await quantity_of(film.id) == Decimal("1")


async def test_auto_deduction_without_materials(session_maker):
    async with session_maker() as db:
        result = await auto_deduction_service.deduct_for_order(
            db, 1, [AutoDeductionItem(type="design", params={"description": "макет"})]
        )
    assert result.deducted_materials == []
    assert result.warnings == []


async def test_spend_with_return_reason_cannot_skip_floor(session_maker, make_material, quantity_of, moves_of):
    paper = await make_material(quantity=100, min_quantity=80)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [
                _op(OperationType.SPEND, paper.id, quantity=90, reason=MoveReason.ORDER_DELETE_ITEM),
            ])
    assert isinstance(exc.value.cause, InvalidInput)
    assert await quantity_of(paper.id) == Decimal("100")
    assert len(await moves_of(paper.id)) == 1


async def test_spend_with_other_consumption_reason_keeps_floor(session_maker, make_material, quantity_of):
    paper = await make_material(quantity=100, min_quantity=80)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [
                _op(OperationType.SPEND, paper.id, quantity=90, reason=MoveReason.ORDER_ADD_ITEM),
            ])
    assert isinstance(exc.value.cause, InsufficientStock)
    assert await quantity_of(paper.id) == Decimal("100")


@pytest.mark.parametrize("op_kwargs", [
    {"type_": OperationType.ADD, "quantity": Decimal("5"), "reason": MoveReason.WAREHOUSE_SPEND},
    {"type_": OperationType.ADJUST, "new_quantity": Decimal("10"), "reason": MoveReason.AUTO_DEDUCTION},
    {"type_": OperationType.ADJUST, "new_quantity": Decimal("150"), "reason": MoveReason.WAREHOUSE_ADD},
])
async def test_reason_of_other_direction_rejected(session_maker, make_material, quantity_of, op_kwargs):
    paper = await make_material(quantity=100)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch) as exc:
            await transaction_service.execute(db, [_op(material_id=paper.id, **op_kwargs)])
    assert isinstance(exc.value.cause, InvalidInput)
    assert await quantity_of(paper.id) == Decimal("100")


async def test_batch_operations_are_audited(session_maker, make_material):
    paper = await make_material(name="Бумага", quantity=100)
    film = await make_material(name="Плёнка", quantity=10)
    async with session_maker() as db:
        results = await transaction_service.execute(db, [
            _op(OperationType.SPEND, paper.id, quantity=30, order_id=9, user_id=4, metadata={"source": "касса"}),
            _op(OperationType.ADD, film.id, quantity=5),
            _op(OperationType.ADJUST, film.id, new_quantity=15),
        ])

    async with session_maker() as db:
        rows = await transaction_service.list_audit(db)
        paper_rows = await transaction_service.list_audit(db, material_id=paper.id)
        adjust_rows = await transaction_service.list_audit(db, operation_type=OperationType.ADJUST)
    # Новые сверху
    assert [r.batch_index for r in rows] == [2, 1, 0]
    (spend,) = paper_rows
    assert spend.operation_type == "spend"
    assert (spend.quantity, spend.old_quantity, spend.new_quantity) == (Decimal("30"), Decimal("100"), Decimal("70"))
    assert spend.reason == MoveReason.WAREHOUSE_SPEND
    assert spend.move_id == results[0].move_id
    assert spend.order_id == 9
    assert spend.user_id == 4
    assert spend.meta == {"source": "касса"}
    # adjust на то же значение: движения нет, но операция в аудите есть
    (adjust,) = adjust_rows
    assert adjust.quantity == Decimal("0")
    assert adjust.move_id is None


async def test_rolled_back_batch_leaves_no_audit(session_maker, make_material):
    a = await make_material(name="A", quantity=100)
    b = await make_material(name="B", quantity=5)
    async with session_maker() as db:
        with pytest.raises(ConflictDuringBatch):
            await transaction_service.execute(db, [
                _op(OperationType.SPEND, a.id, quantity=10),
                _op(OperationType.SPEND, b.id, quantity=10),
            ])
    async with session_maker() as db:
        assert await transaction_service.list_audit(db) == []


async def test_auto_deduction_is_audited(session_maker, make_material):
    paper = await make_material(quantity=100)
    items = [AutoDeductionItem(type="x", quantity=4, components=[ComponentIn(material_id=paper.id, qty_per_item=1)])]
    async with session_maker() as db:
        await auto_deduction_service.deduct_for_order(db, 12, items)
        (row,) = await transaction_service.list_audit(db, order_id=12)
    assert row.reason == MoveReason.AUTO_DEDUCTION
    assert row.quantity == Decimal("4")
