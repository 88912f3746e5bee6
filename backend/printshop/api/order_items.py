"""Позиции заказа: добавление, изменение, удаление со списанием и возвратом материалов."""
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import get_db
from printshop.schemas.order_item import OrderItemCreate, OrderItemResponse, OrderItemUpdate
from printshop.services import order_item_service

router = APIRouter(prefix="/orders/{order_id}/items", tags=["order-items"])


@router.get("", response_model=list[OrderItemResponse])
async def list_items(order_id: int, db: AsyncSession = Depends(get_db)):
    return await order_item_service.list_items(db, order_id)


@router.post("", response_model=OrderItemResponse, status_code=201)
async def add_item(
    order_id: int,
    body: OrderItemCreate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await order_item_service.add_item(db, order_id, body, user_id=user_id)


@router.get("/{item_id}", response_model=OrderItemResponse)
async def get_item(order_id: int, item_id: int, db: AsyncSession = Depends(get_db)):
    return await order_item_service.get_item(db, order_id, item_id)


@router.patch("/{item_id}", response_model=OrderItemResponse)
async def update_item(
    order_id: int,
    item_id: int,
    body: OrderItemUpdate,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await order_item_service.update_item(db, order_id, item_id, body, user_id=user_id)


@router.delete("/{item_id}", status_code=204)
async def delete_item(
    order_id: int,
    item_id: int,
    user_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Удаление идемпотентно: позиции уже нет — тоже 204."""
    await order_item_service.delete_item(db, order_id, item_id, user_id=user_id)
    return Response(status_code=204)
