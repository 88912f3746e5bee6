"""Составы продукции (пресеты), только чтение."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.core.database import get_db
from printshop.schemas.material import ComponentOut, CompositionResponse, ProductMaterialResponse
from printshop.services.composition import list_presets, resolve

router = APIRouter(prefix="/product-materials", tags=["product-materials"])


@router.get("", response_model=list[ProductMaterialResponse])
async def list_product_materials(
    type: Optional[str] = None,
    description: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await list_presets(db, type, description)


@router.get("/resolve", response_model=CompositionResponse)
async def resolve_composition(
    type: str = Query(..., min_length=1),
    description: str = "",
    db: AsyncSession = Depends(get_db),
):
    """Какие материалы уходят на 1 шт продукта type / description."""
    composition = await resolve(db, type, description)
    return CompositionResponse(
        source=composition.source.value,
        components=[
            ComponentOut(material_id=c.material_id, qty_per_item=c.qty_per_item)
            for c in composition.components
        ],
    )
