# models/ownership_link.py
from sqlalchemy import Column, Boolean, TIMESTAMP, ForeignKey, Index, Uuid, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class OwnershipLink(Base):
    """One user's claim on one car, with the per-pair primary/recency state."""

    __tablename__ = "user_cars"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    car_id = Column(Uuid(as_uuid=True), ForeignKey("cars.id", ondelete="CASCADE"), primary_key=True)
    is_primary = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    last_used_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="links")
    car = relationship("Car", back_populates="links")

    __table_args__ = (
        Index("ix_user_cars_user_primary", "user_id", "is_primary"),
        # at most one primary link per user, enforced by the database
        Index(
            "ux_user_cars_primary_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_primary = true"),
            sqlite_where=text("is_primary = 1"),
        ),
    )
