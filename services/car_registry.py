# services/car_registry.py
from __future__ import annotations
import logging
import re
from typing import Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.utils import hash_pin, verify_pin_hash
from models import Car, OwnershipLink
from services.errors import InvalidPin, DuplicatePlate, DuplicateVin
from services.image_service import resolve_url

logger = logging.getLogger(__name__)

CAR_FIELDS = {"brand", "model", "year", "color", "vin"}
PIN_RE = re.compile(r"^[0-9]{4,6}$")
_WHITESPACE = re.compile(r"\s+")


def normalize_plate(plate: Optional[str]) -> str:
    """Plates compare upper-cased with all whitespace removed ('abc 1234' == 'ABC1234')."""
    return _WHITESPACE.sub("", plate or "").upper()


def normalize_vin(vin: Optional[str]) -> Optional[str]:
    vin = (vin or "").strip().upper()
    return vin or None


def is_valid_pin(pin: Optional[str]) -> bool:
    return isinstance(pin, str) and bool(PIN_RE.match(pin))


def _sanitize_attrs(attrs: Mapping | None) -> dict:
    """Return only descriptive car fields with non-None values."""
    if not attrs:
        return {}
    return {k: v for k, v in attrs.items() if k in CAR_FIELDS and v is not None}


def find_by_license_plate(db: Session, plate: str) -> Optional[Car]:
    normalized = normalize_plate(plate)
    if not normalized:
        return None
    return db.query(Car).filter(Car.license_plate == normalized).first()


def find_by_vin(db: Session, vin: str) -> Optional[Car]:
    normalized = normalize_vin(vin)
    if not normalized:
        return None
    return db.query(Car).filter(Car.vin == normalized).first()


def create_car(db: Session, attrs: Mapping, raw_pin: str) -> Car:
    """
    Insert a new car with a hashed PIN and return it (flushed, not committed).

    Plate and VIN uniqueness is checked up front and again by the unique
    indexes on flush; a losing race is reported as the same conflict error.
    On such a conflict the session is rolled back before raising.
    """
    if not is_valid_pin(raw_pin):
        raise InvalidPin()

    plate = normalize_plate(attrs.get("license_plate"))
    if not plate:
        raise ValueError("license_plate is required")

    fields = _sanitize_attrs(attrs)
    fields["vin"] = normalize_vin(fields.get("vin"))

    if find_by_license_plate(db, plate):
        raise DuplicatePlate()
    if fields["vin"] and find_by_vin(db, fields["vin"]):
        raise DuplicateVin()

    car = Car(license_plate=plate, pin_hash=hash_pin(raw_pin), **fields)
    db.add(car)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        if find_by_license_plate(db, plate):
            raise DuplicatePlate()
        if fields["vin"] and find_by_vin(db, fields["vin"]):
            raise DuplicateVin()
        raise

    logger.info("Car %s registered with plate %s", car.id, plate)
    return car


def verify_pin(car: Car, raw_pin: str) -> bool:
    return verify_pin_hash(raw_pin or "", car.pin_hash or "")


def serialize_car(car: Car, link: Optional[OwnershipLink] = None) -> dict:
    """Public representation of a car. The PIN hash is never included."""
    data = {
        "id":            str(car.id),
        "license_plate": car.license_plate,
        "brand":         car.brand,
        "model":         car.model,
        "year":          car.year,
        "color":         car.color,
        "vin":           car.vin,
        "car_image":     car.image_ref,
        "car_image_url": resolve_url(car.image_ref),
        "created_at":    car.created_at.isoformat() if car.created_at else None,
    }
    if link is not None:
        data["is_primary"] = bool(link.is_primary)
        data["last_used_at"] = link.last_used_at.isoformat() if link.last_used_at else None
    return data
