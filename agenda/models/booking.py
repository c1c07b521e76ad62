"""Booking model definition."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agenda.models.base import Base

if TYPE_CHECKING:
    from agenda.models.patient import PatientRow
    from agenda.models.therapy import TherapyRow


class BookingRow(Base):
    """A therapy session on the clinic calendar."""

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id"),
        nullable=False,
    )
    therapy_id: Mapped[int] = mapped_column(
        ForeignKey("therapies.id"),
        nullable=False,
    )
    booking_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        default="scheduled",
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    patient: Mapped["PatientRow"] = relationship(back_populates="bookings")
    therapy: Mapped["TherapyRow"] = relationship(back_populates="bookings")
