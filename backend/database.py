# backend/database.py
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker, declarative_base

from backend.config import DATABASE_URL, SQL_ECHO


def make_engine(database_url: str, **kwargs) -> Engine:
    """Engine with the SQLite tweaks the app relies on (threads + FK cascades)."""
    url = make_url(database_url)
    is_sqlite = url.drivername.startswith("sqlite")

    connect_args = dict(kwargs.pop("connect_args", {}))
    # Required for SQLite when used with FastAPI/threads (cache I/O runs in worker threads)
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)

    kwargs.setdefault("pool_pre_ping", True)  # avoid stale connections on resume
    engine = create_engine(database_url, echo=SQL_ECHO, connect_args=connect_args, **kwargs)

    if is_sqlite:
        # path versions rely on ON DELETE CASCADE, which SQLite leaves off by default
        @event.listens_for(engine, "connect")
        def _fk_pragma(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return engine


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
