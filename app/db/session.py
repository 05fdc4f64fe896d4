import contextvars
import logging
import threading

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

Base = declarative_base()

_pool_logger = logging.getLogger("app.db.pool")

# --- Per-request DB query counting using ContextVar ---
# The request middleware sets this to 0 at the start of each request and the
# cursor listener below increments it, so each request logs its roundtrips.
request_db_query_count = contextvars.ContextVar("request_db_query_count", default=None)


class Database:
    """Engine plus session factory, created by the application context.

    Pool event counters are per instance so that several databases (the
    test suite builds one per test) never share state.
    """

    def __init__(self, settings):
        self.settings = settings
        self.url = settings.DATABASE_URL
        self._lock = threading.Lock()
        self._counts = {"connect": 0, "checkout": 0, "checkin": 0, "queries": 0}

        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.url or self.url.rstrip("/") == "sqlite:":
                # one shared connection, otherwise every checkout sees an empty DB
                kwargs["poolclass"] = StaticPool
        else:
            # pool_pre_ping avoids "MySQL server has gone away" on stale connections
            kwargs = {
                "pool_size": settings.DB_POOL_SIZE,
                "max_overflow": settings.DB_MAX_OVERFLOW,
                "pool_pre_ping": True,
                "pool_recycle": settings.DB_POOL_RECYCLE,
                "poolclass": QueuePool,
            }
        self.engine = create_engine(self.url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._install_listeners()

    def _bump(self, key: str) -> int:
        with self._lock:
            self._counts[key] += 1
            return self._counts[key]

    def _install_listeners(self):
        every_n = max(int(self.settings.DB_LOG_EVERY_N or 1), 1)

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            cnt = self._bump("connect")
            if cnt % every_n == 0:
                _pool_logger.info(f"SQLAlchemy Pool CONNECT events: total opened={cnt}")

        @event.listens_for(self.engine, "checkout")
        def _on_checkout(dbapi_connection, connection_record, connection_proxy):
            cnt = self._bump("checkout")
            if cnt % every_n == 0:
                _pool_logger.info(f"SQLAlchemy Pool CHECKOUT events: total checkouts={cnt}")

        @event.listens_for(self.engine, "checkin")
        def _on_checkin(dbapi_connection, connection_record):
            cnt = self._bump("checkin")
            if cnt % every_n == 0:
                _pool_logger.info(f"SQLAlchemy Pool CHECKIN events: total checkins={cnt}")

        @event.listens_for(self.engine, "before_cursor_execute")
        def _on_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            current = request_db_query_count.get()
            if current is not None:
                request_db_query_count.set(current + 1)
            self._bump("queries")

    @property
    def total_queries(self) -> int:
        """Total number of DB roundtrips since this database was created."""
        return self._counts["queries"]

    def create_all(self):
        # Import models here so they are registered on the metadata
        import app.models.user  # noqa: F401
        import app.models.session  # noqa: F401
        import app.models.order  # noqa: F401
        import app.models.inventory  # noqa: F401
        import app.models.table_map  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def session(self):
        return self.SessionLocal()

    def dispose(self):
        self.engine.dispose()


def get_db(request: Request):
    """FastAPI dependency that provides a scoped SQLAlchemy Session.

    The connection is always returned to the pool after the request.
    """
    db = request.app.state.context.db.session()
    try:
        yield db
    finally:
        db.close()
