"""Mentor ORM models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin


class MentorProfile(BaseModelMixin, Base):
    """Mentor profile carrying the published session rates."""

    __tablename__ = "mentor_profiles"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    rate_30_min: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate_60_min: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="mentor_profile")

    def rate_for(self, duration_minutes: int) -> Decimal:
        """Published price for a session of the given length."""
        if duration_minutes == 30:
            return self.rate_30_min
        if duration_minutes == 60:
            return self.rate_60_min
        raise ValueError(f"Unsupported session duration: {duration_minutes}")
