from datetime import datetime, timezone
from typing import Optional

import sqlalchemy
from sqlalchemy import Column, String
from sqlalchemy.orm import declarative_base
from uuid_extension import uuid7

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    """Time-ordered id; list endpoints page by it."""
    return str(uuid7())


class BaseModel(Base):
    __abstract__ = True
    id = Column(String(36), primary_key=True, default=new_id, index=True)
    created_at = Column(sqlalchemy.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        sqlalchemy.DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

# Models import Base from here; app/platform/db/session.py registers them before create_all.
