"""SQLAlchemy helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATA_DIR, RPSettings


class Base(DeclarativeBase):
    pass


class Database:
    def __init__(self, settings: RPSettings):
        if settings.database_url.startswith(f"sqlite:///{DATA_DIR}"):
            DATA_DIR.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(settings.database_url, future=True)
        self.SessionLocal = sessionmaker(self.engine, expire_on_commit=False, future=True)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
