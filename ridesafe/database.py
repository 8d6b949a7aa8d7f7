import os
from contextlib import contextmanager
from datetime import datetime, timezone
from dotenv import load_dotenv

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ridesafe.core import config
from ridesafe.core.errors import PersistenceError


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ridesafe.db")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every stored time is naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def serialize(row) -> dict:
    """Column name to value mapping for an ORM row."""
    if row is None:
        return row
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def persistence_guard(db: Session):
    """Roll back and re-raise database failures as PersistenceError."""
    try:
        yield db
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError() from exc

