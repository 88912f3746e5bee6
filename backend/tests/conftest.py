"""Фикстуры: временная SQLite-база на тест, сессии для сервисов и TestClient для API."""
import os

# До импорта приложения: тесты не должны трогать рабочую БД и запускать фоновую очистку
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./printshop_test.db")
os.environ.setdefault("RESERVATION_SWEEP_INTERVAL_SECONDS", "0")

import anyio
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

import printshop.models  # noqa: F401  (регистрация таблиц в Base.metadata)
from printshop.core.database import Base, get_db, make_engine, make_session_maker
from printshop.models import MaterialMove, ProductMaterial
from printshop.services import stock_ledger


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db_engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await _create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return make_session_maker(db_engine)


@pytest.fixture
def make_material(session_maker):
    """Создать материал с начальным остатком (отдельной транзакцией)."""
    async def _make(name="Бумага SRA3 150г", quantity=1000, min_quantity=None, unit="лист"):
        async with session_maker() as db:
            return await stock_ledger.create_material(db, name, unit, quantity, min_quantity)
    return _make


@pytest.fixture
def make_preset(session_maker):
    """Пресет состава: (category, description) → [(material_id, qty_per_item), ...]."""
    async def _make(category, description, components):
        async with session_maker() as db:
            for material_id, qty in components:
                db.add(ProductMaterial(
                    preset_category=category,
                    preset_description=description,
                    material_id=material_id,
                    qty_per_item=qty,
                ))
            await db.commit()
    return _make


@pytest.fixture
def quantity_of(session_maker):
    async def _get(material_id):
        async with session_maker() as db:
            return await stock_ledger.get_quantity(db, material_id)
    return _get


@pytest.fixture
def moves_of(session_maker):
    """Движения материала в порядке записи."""
    async def _get(material_id):
        async with session_maker() as db:
            r = await db.execute(
                select(MaterialMove).where(MaterialMove.material_id == material_id).order_by(MaterialMove.id)
            )
            return list(r.scalars().all())
    return _get


@pytest.fixture
def client(tmp_path):
    """Тестовый клиент приложения на отдельной временной БД."""
    from printshop.main import app

    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    anyio.run(_create_schema, engine)
    test_session_maker = make_session_maker(engine)

    async def _get_test_db():
        async with test_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    yield TestClient(app)
    app.dependency_overrides.clear()
