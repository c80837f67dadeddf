"""
SQLAlchemy Base Model
=====================

Declarative base for all fleet scoring database models.

Author: Fleet Platform Team
Version: 1.0.0
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


# JSONB on PostgreSQL, plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Base class for all fleet scoring database models.

    Datetime columns are timezone-aware; dict columns are JSON documents.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        dict[str, Any]: JSONDocument,
    }
