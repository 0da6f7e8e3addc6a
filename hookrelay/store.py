from __future__ import annotations

import uuid
from pathlib import Path
from time import time
from typing import Iterable, Optional

from pydantic import AnyHttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Column, Integer, String, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, delete, select

from .config import settings
from .errors import LoadError, NotFoundError, ValidationError

_URL = TypeAdapter(AnyHttpUrl)

MIN_URL_LENGTH = 3


class Subscription(SQLModel, table=True):
    seq: int | None = Field(default=None, primary_key=True)
    id: str = Field(sa_column=Column(String, nullable=False, unique=True, index=True))
    target_url: str = Field(sa_column=Column(String, nullable=False))
    created_at: int = Field(sa_column=Column(Integer, nullable=False))
    updated_at: int = Field(sa_column=Column(Integer, nullable=False))

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "targetUrl": self.target_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def validate_target_url(target_url: str) -> str:
    cleaned = (target_url or "").strip()
    if len(cleaned) < MIN_URL_LENGTH:
        raise ValidationError(f"targetUrl must be at least {MIN_URL_LENGTH} characters")
    try:
        _URL.validate_python(cleaned)
    except PydanticValidationError as exc:
        raise ValidationError(f"targetUrl is not a valid http(s) URL: {cleaned}") from exc
    return cleaned


class SubscriptionStore:
    """SQLite-backed registry of subscriber URLs.

    Duplicate URLs are accepted; each registration is its own subscription.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path
        self._engine: Engine | None = None

    def _path(self) -> Path:
        path = Path(self._db_path or settings.DATABASE_PATH)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def _get_engine(self) -> Engine:
        desired = str(self._path())
        if self._engine is None or self._engine.url.database != desired:
            self.dispose()
            self._engine = create_engine(f"sqlite:///{desired}", echo=False)
            SQLModel.metadata.create_all(self._engine)
        return self._engine

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def init_db(self) -> None:
        self._get_engine()

    def list(self) -> list[Subscription]:
        try:
            with Session(self._get_engine()) as session:
                stmt = select(Subscription).order_by(Subscription.seq)
                return list(session.exec(stmt))
        except SQLAlchemyError as exc:
            raise LoadError(f"could not load subscriptions: {exc}") from exc

    def count(self) -> int:
        with Session(self._get_engine()) as session:
            return int(session.exec(select(func.count()).select_from(Subscription)).one())

    def get(self, subscription_id: str) -> Subscription:
        with Session(self._get_engine()) as session:
            row = session.exec(
                select(Subscription).where(Subscription.id == subscription_id)
            ).first()
            if row is None:
                raise NotFoundError(subscription_id)
            return row

    def create(self, target_url: str) -> Subscription:
        cleaned = validate_target_url(target_url)
        now = int(time())
        row = Subscription(
            id=str(uuid.uuid4()), target_url=cleaned, created_at=now, updated_at=now
        )
        with Session(self._get_engine()) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def update(self, subscription_id: str, target_url: str) -> Subscription:
        cleaned = validate_target_url(target_url)
        with Session(self._get_engine()) as session:
            row = session.exec(
                select(Subscription).where(Subscription.id == subscription_id)
            ).first()
            if row is None:
                raise NotFoundError(subscription_id)
            row.target_url = cleaned
            row.updated_at = int(time())
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def remove(self, subscription_id: str) -> int:
        with Session(self._get_engine()) as session:
            result = session.exec(
                delete(Subscription).where(Subscription.id == subscription_id)
            )
            session.commit()
            return result.rowcount or 0

    def seed(self, target_urls: Iterable[str]) -> int:
        """Insert ``target_urls`` only when the registry is empty."""

        if self.count():
            return 0
        seeded = 0
        for url in target_urls:
            self.create(url)
            seeded += 1
        return seeded
