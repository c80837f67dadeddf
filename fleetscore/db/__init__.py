"""
Fleet Score Database Layer
==========================

PostgreSQL persistence using SQLAlchemy 2.0 async.

This module provides:
    - Async engine and session factory
    - ORM rows for violations and driver scores
    - Repository interfaces with PostgreSQL and in-memory implementations

Usage:
    from fleetscore.db import create_engine, create_session_factory
    from fleetscore.db import SqlViolationRepository

    engine = create_engine()
    violations = SqlViolationRepository(create_session_factory(engine))

Author: Fleet Platform Team
Version: 1.0.0
"""

from fleetscore.db.base import Base
from fleetscore.db.models import DriverScoreDB, ViolationDB
from fleetscore.db.repository import (
    DriverScoreRepository,
    SqlDriverScoreRepository,
    SqlViolationRepository,
    ViolationRepository,
    bounded,
)
from fleetscore.db.memory import (
    InMemoryDriverScoreRepository,
    InMemoryViolationRepository,
)
from fleetscore.db.session import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "ViolationDB",
    "DriverScoreDB",
    "ViolationRepository",
    "DriverScoreRepository",
    "SqlViolationRepository",
    "SqlDriverScoreRepository",
    "InMemoryViolationRepository",
    "InMemoryDriverScoreRepository",
    "bounded",
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
]
