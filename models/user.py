import uuid
from sqlalchemy import Column, Text, TIMESTAMP, ForeignKey, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=True)
    # blob ref of the profile picture, same contract as Car.image_ref
    image_ref = Column("profile_image", Text, nullable=True)
    # mirrors the most recently activated link; must point at a linked car
    last_used_car_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("cars.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    links = relationship("OwnershipLink", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"
