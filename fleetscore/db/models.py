"""
Database Models
===============

ORM rows for the persisted side of the scoring pipeline:

    - violations: append-only violation history
    - driver_scores: one live score row per driver (versioned)

Author: Fleet Platform Team
Version: 1.0.0
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fleetscore.db.base import Base, utc_now


class ViolationDB(Base):
    """A recorded violation. Never updated after insert."""

    __tablename__ = "violations"
    __table_args__ = (
        Index("ix_violations_driver_recorded", "driver_id", "recorded_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    truck_id: Mapped[str] = mapped_column(String(64), nullable=False)
    driver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    violation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rule_id: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    points_deducted: Mapped[int] = mapped_column(Integer, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

    # Reading snapshot
    reading_timestamp: Mapped[datetime] = mapped_column(nullable=False)
    speed: Mapped[Optional[float]] = mapped_column(Float)
    fuel_level: Mapped[Optional[float]] = mapped_column(Float)
    engine_temp: Mapped[Optional[float]] = mapped_column(Float)
    tire_front_left: Mapped[Optional[float]] = mapped_column(Float)
    tire_front_right: Mapped[Optional[float]] = mapped_column(Float)
    tire_rear_left: Mapped[Optional[float]] = mapped_column(Float)
    tire_rear_right: Mapped[Optional[float]] = mapped_column(Float)
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lon: Mapped[Optional[float]] = mapped_column(Float)


class DriverScoreDB(Base):
    """Current score of a driver, replaced wholesale on every recomputation."""

    __tablename__ = "driver_scores"

    driver_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_score: Mapped[int] = mapped_column(Integer, nullable=False)
    score_category: Mapped[str] = mapped_column(String(16), nullable=False)
    total_violations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_violation_date: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    explain: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
