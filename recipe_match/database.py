import time

import structlog
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_match.config import Settings
from recipe_match.errors import StoreUnavailable

log = structlog.get_logger(__name__)


def _set_sqlite_pragmas(dbapi_conn, _):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    cur.execute("PRAGMA temp_store=MEMORY;")
    cur.close()


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, future=True, **kwargs)
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine
    return create_engine(url, future=True, pool_pre_ping=True, pool_size=10, max_overflow=20)


class Database:
    """Owns one engine and its session factory. Passed explicitly to every component."""

    def __init__(self, engine: Engine, retries: int = 5, retry_delay: float = 1.0):
        self.engine = engine
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            build_engine(settings.database_url),
            retries=settings.db_connect_retries,
            retry_delay=settings.db_connect_delay_seconds,
        )

    def connect(self) -> None:
        """Fixed-delay reconnect loop; raises StoreUnavailable after the last attempt."""
        last_error: Exception | None = None
        for attempt in range(1, self.retries + 1):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                log.info("db_ready", attempt=attempt)
                return
            except SQLAlchemyError as e:
                last_error = e
                log.warning("db_connect_retry", attempt=attempt, retries=self.retries, error=str(e))
                if attempt < self.retries:
                    time.sleep(self.retry_delay)
        raise StoreUnavailable(f"database unreachable after {self.retries} attempts") from last_error

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
