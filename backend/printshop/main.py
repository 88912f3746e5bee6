import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from printshop.config import settings
from printshop.core.database import Base, async_session_maker, engine
from printshop.core.exceptions import WarehouseError
from printshop.core.logging_config import get_logger, setup_logging
from printshop.api.materials import router as materials_router
from printshop.api.order_items import router as order_items_router
from printshop.api.product_materials import router as product_materials_router
from printshop.api.reservations import router as reservations_router
from printshop.api.warehouse_transactions import router as warehouse_transactions_router
from printshop.models import MoveImmutableError
from printshop.services import reservation_service

setup_logging()
logger = get_logger(__name__)


async def sweep_expired_reservations(interval_seconds: int) -> None:
    """Периодически переводит просроченные резервы в expired."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with async_session_maker() as session:
                await reservation_service.cleanup_expired(session)
        except Exception as e:
            logger.exception("Очистка просроченных резервов: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Таблицы БД проверены/созданы")
    sweeper = None
    if settings.reservation_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_expired_reservations(settings.reservation_sweep_interval_seconds)
        )
        logger.info("Очистка резервов каждые %s с", settings.reservation_sweep_interval_seconds)
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await engine.dispose()


app = FastAPI(title="Типография: склад материалов", version="1.0.0", lifespan=lifespan)


@app.exception_handler(WarehouseError)
async def warehouse_error_handler(request: Request, exc: WarehouseError):
    if exc.status_code >= 409:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(MoveImmutableError)
async def immutable_move_handler(request: Request, exc: MoveImmutableError):
    logger.error("Попытка изменить журнал движений: %s", exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Необработанная ошибка: %s", exc)
    detail = "Внутренняя ошибка сервера"
    err_str = str(exc).lower()
    if "check constraint" in err_str or "ck_materials_quantity_non_negative" in err_str:
        detail = "Остаток материала не может быть отрицательным"
    elif "foreign key" in err_str or "violates foreign key" in err_str:
        detail = "Ошибка связи с данными (например, материал не найден)"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(materials_router)
app.include_router(product_materials_router)
app.include_router(order_items_router)
app.include_router(reservations_router)
app.include_router(warehouse_transactions_router)


@app.get("/health")
def health():
    return {"status": "ok"}
