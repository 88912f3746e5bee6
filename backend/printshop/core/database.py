"""Подключение к БД: async engine, фабрика сессий, зависимость get_db и atomic()."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from printshop.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Создать engine. Для SQLite (тесты, локальный запуск) BEGIN выдаём сами:
    BEGIN IMMEDIATE сериализует писателей, а SAVEPOINT начинает работать корректно."""
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_pre_ping=True)

    sqlite_engine = create_async_engine(url, echo=echo, poolclass=NullPool)

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = make_session_maker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Одна атомарная единица работы на переданной сессии.

    Если на сессии транзакции ещё нет — открывает её и фиксирует на выходе.
    Если транзакция уже идёт (вложенный вызов) — работает через SAVEPOINT:
    при ошибке откатывается только эта единица, решение о COMMIT остаётся
    за владельцем внешней транзакции.
    """
    if db.in_transaction():
        async with db.begin_nested():
            yield db
    else:
        async with db.begin():
            yield db
