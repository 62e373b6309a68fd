"""SQLAlchemy engine, session factory, and declarative Base."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from claim_intake.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def build_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    """Create an engine; SQLite connections may be shared across request threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = build_engine()

SessionLocal = build_session_factory(engine)


def init_db(bind: Engine = engine) -> None:
    """Create all tables. Called once at application startup."""
    from claim_intake.db import models  # noqa: F401  registers models on Base

    Base.metadata.create_all(bind=bind)
