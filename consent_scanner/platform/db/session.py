from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from consent_scanner.platform.config import settings


def create_engine_for(database_url: str) -> AsyncEngine:
    """Build an async engine; pooling options only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, future=True)

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=10,
        max_overflow=10,
        pool_timeout=30,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables (local/dev and tests; production runs Alembic)."""
    from consent_scanner.platform.db.base import Base
    from consent_scanner.features.scanner.models import ScanJob, ScanReport, ReportIssue  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = create_engine_for(settings.DATABASE_URL)
SessionLocal = create_session_factory(engine)


async def get_db():
    async with SessionLocal() as session:
        yield session
