"""Declarative base and shared column helpers."""
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Type
import uuid

from sqlalchemy import Enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def str_enum(enum_cls: Type[PyEnum], length: int = 32) -> Enum:
    """Store a str Enum by its value in a plain VARCHAR column."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
