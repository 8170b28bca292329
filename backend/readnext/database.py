from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from readnext.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

logger.info("READNEXT DATABASE_URL = %s", settings.get_masked_database_url())

SLOW_QUERY_THRESHOLD_MS = 200.0


def _engine_kwargs(url: str) -> dict:
    # Scorer threads open their own sessions; SQLite must allow cross-thread use
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def log_slow_queries(bind: Engine, threshold_ms: float = SLOW_QUERY_THRESHOLD_MS) -> None:
    """Warn about every statement on ``bind`` that takes at least ``threshold_ms``."""

    @event.listens_for(bind, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        context._readnext_started = time.perf_counter()

    @event.listens_for(bind, "after_cursor_execute")
    def _report_slow(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_readnext_started", None)
        if started is None:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms >= threshold_ms:
            logger.warning("SLOW_QUERY: %.2fms - %s", elapsed_ms, statement.split("\n")[0].strip()[:100])


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,  # slow statements are logged by log_slow_queries instead
    **_engine_kwargs(settings.DATABASE_URL),
)
if settings.DEBUG:
    log_slow_queries(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None) -> None:
    """
    Ensure all tables exist.

    create_all() only creates missing tables; it never alters existing ones.
    Imports the models module so that Base.metadata includes every table.
    """
    from readnext import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
