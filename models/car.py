import uuid
from sqlalchemy import Column, Text, String, Integer, TIMESTAMP, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class Car(Base):
    __tablename__ = "cars"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    license_plate = Column(String(20), unique=True, nullable=False)  # normalized: upper, no spaces
    pin_hash = Column("pin_code", Text, nullable=False)  # bcrypt; never serialized
    brand = Column(String(50), nullable=True)
    model = Column(String(50), nullable=True)
    year = Column(Integer, nullable=True)
    color = Column(String(30), nullable=True)
    vin = Column(String(17), unique=True, nullable=True)
    image_ref = Column("car_image", Text, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    links = relationship("OwnershipLink", back_populates="car", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Car {self.id} {self.license_plate}>"
