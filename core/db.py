"""
core/db.py -- Engine construction shared by every SQLAlchemy Core store.

Each store (auth/store.py, review/store.py, sales/store.py) owns its own
MetaData and tables but builds its engine here so SQLite connections are
configured identically everywhere.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys for every new SQLite connection.

    PRAGMAs are not inherited by new connections from the pool, so this runs
    per-connection via the "connect" event.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def make_engine(db_url: str) -> Engine:
    """Create an Engine; SQLite URLs get check_same_thread=False and WAL mode.

    FastAPI runs sync route handlers in a thread pool, so the same pooled
    SQLite connection may be used from different threads.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
