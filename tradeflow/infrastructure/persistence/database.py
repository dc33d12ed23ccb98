"""
TradeFlow – SQLAlchemy Async Database
=====================================
Base declarativa + manager del engine async (MySQL vía aiomysql).

Los repositorios dependen de ITradeRepository, no de esta clase.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tradeflow.shared.config.settings import Settings
from tradeflow.shared.logging.logger import get_logger

logger = get_logger("database")

# ─── Nombres de constraints e índices ──────────────────────────────────────
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base declarativa para los modelos ORM."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class DatabaseManager:
    """
    Manager del engine async y de la fábrica de sesiones.

    USO:
        db = DatabaseManager(settings)
        await db.initialize()

        repo = SqlTradeRepository(db)
        trade_id = await repo.insert_open_trade(record)

        await db.close()
    """

    def __init__(self, settings: Optional[Settings] = None, url: Optional[str] = None) -> None:
        self._settings = settings or Settings()
        self._url = url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def database_url(self) -> str:
        """URL de conexión (explícita o construida desde settings)."""
        if self._url:
            return self._url
        s = self._settings
        return (
            f"mysql+aiomysql://{s.db_user}:{s.db_password}"
            f"@{s.db_host}:{s.db_port}/{s.db_name}"
            f"?charset=utf8mb4"
        )

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def initialize(self, create_tables: bool = True) -> None:
        """Crear engine + session factory (y tablas si faltan)."""
        if self._engine is not None:
            return

        s = self._settings
        kwargs = {"echo": s.db_echo, "pool_pre_ping": True}
        if self.database_url.startswith("mysql"):
            kwargs.update(
                pool_size=s.db_pool_size,
                max_overflow=s.db_max_overflow,
                pool_recycle=3600,
            )
        self._engine = create_async_engine(self.database_url, **kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        if create_tables:
            # Registrar modelos en Base.metadata
            from tradeflow.infrastructure.persistence.models import trade  # noqa: F401

            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info("✓ Base de datos inicializada (%s)", self._engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """Cerrar el engine y todas las conexiones del pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Sesión transaccional: commit al salir, rollback ante error."""
        if self._session_factory is None:
            raise RuntimeError("Sesión pedida antes de DatabaseManager.initialize()")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
