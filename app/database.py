"""ADLENS: Database Engine & Session Factory."""

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from app.config import settings
from app.core.logging import get_logger

# Table modules must be imported before create_all sees them
from app.models import analysis_models, client_models, engine_config, raw_models  # noqa: F401

logger = get_logger("database")

db_url = settings.effective_database_url


def mask_url(url: str) -> str:
    """Hide the password part of a DB URL for logging."""
    if "@" not in url:
        return url
    credentials, host = url.split("@", 1)
    scheme, _, userinfo = credentials.partition("//")
    if ":" not in userinfo:
        return url
    user = userinfo.split(":", 1)[0]
    return f"{scheme}//{user}:****@{host}"


def build_engine(url: str) -> Engine:
    """SQLite gets a thread-tolerant connection; anything else a sized pool."""
    kwargs: dict = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        logger.info(f"📦 Database backend: SQLite ({url})")
    else:
        kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=300)
        logger.info(f"🐘 Database backend: PostgreSQL ({mask_url(url)})")
    return create_engine(url, **kwargs)


engine = build_engine(db_url)


def check_connection(bind: Engine | None = None) -> bool:
    """Run SELECT 1 against the engine."""
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection check: OK")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection check failed: {e}")
        return False


def init_db(bind: Engine | None = None) -> None:
    """Create every ADLENS table that does not exist yet."""
    SQLModel.metadata.create_all(bind or engine)
    logger.info(f"✅ Tables ready: {len(SQLModel.metadata.tables)}")


def get_session():
    """FastAPI dependency yielding a DB session."""
    with Session(engine) as session:
        yield session
