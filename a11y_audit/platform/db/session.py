from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from a11y_audit.platform.config import settings
from a11y_audit.platform.db.base import Base


def _engine_options(url: str) -> dict:
    # SQLite (tests, local runs): one connection per session, no pool sizing
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 20,
        "max_overflow": 30,
        "pool_timeout": 30,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_options(settings.DATABASE_URL),
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def init_db(bind=None):
    """Create missing tables. Production schemas are managed by alembic."""
    from a11y_audit.features.scan.models import ScanReport, ScanRequest  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
