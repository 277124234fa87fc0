from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import DATABASE_URL, DB_ECHO

logger = logging.getLogger(__name__)


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # one sqlite file shared by the request threads
        return create_engine(url, echo=DB_ECHO, connect_args={"check_same_thread": False})
    return create_engine(url, echo=DB_ECHO, pool_pre_ping=True)


engine = make_engine(DATABASE_URL)


def init_db() -> None:
    from . import models  # noqa: F401  registers the tables

    SQLModel.metadata.create_all(engine)
    logger.info("Database ready with %s tables", len(SQLModel.metadata.tables))


def get_session() -> Session:
    return Session(engine)
