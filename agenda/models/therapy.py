"""Therapy catalog ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agenda.models.base import Base

if TYPE_CHECKING:
    from agenda.models.booking import BookingRow


class TherapyRow(Base):
    """A therapy offered by the clinic."""

    __tablename__ = "therapies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(16), default="#3B82F6", nullable=False)
    # Free text in older catalogs, e.g. "60 min".
    duration: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    price: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )

    bookings: Mapped[List["BookingRow"]] = relationship(
        back_populates="therapy",
        cascade="all, delete-orphan",
    )
