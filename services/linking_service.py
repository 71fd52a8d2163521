# services/linking_service.py
"""
Claiming an existing car (plate + PIN) and registering a brand-new one.

Both paths end in the same link step: the user's first car becomes primary,
the new link is stamped as last used and the user's last-used pointer moves
to it. Every attempt runs in a single transaction with the user row locked,
so a failure leaves neither a car without owner nor a half-made link.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import SessionLocal
from models import Car, User
from services import image_service
from services.car_registry import create_car, find_by_license_plate, serialize_car, verify_pin
from services.errors import AlreadyLinked, CarNotFound, InvalidCredential
from services.link_store import count_links, find_link, insert_link

logger = logging.getLogger(__name__)


def lock_user(db: Session, user_id: uuid.UUID) -> User:
    """Load the user row FOR UPDATE; serializes link-state changes per user."""
    return db.query(User).filter(User.id == user_id).with_for_update().one()


def _link(db: Session, user: User, car: Car) -> bool:
    """Create the (user, car) link; returns whether it became the primary."""
    if find_link(db, user.id, car.id):
        raise AlreadyLinked()

    is_primary = count_links(db, user.id) == 0
    now = datetime.now(timezone.utc)
    insert_link(db, user.id, car.id, is_primary=is_primary, last_used_at=now)
    user.last_used_car_id = car.id
    db.flush()
    return is_primary


def link_existing(user_id: uuid.UUID, license_plate: str, pin: str) -> Dict:
    """
    Attach an existing car to the user after checking its PIN.

    Raises CarNotFound for an unknown plate, InvalidCredential for a wrong
    PIN and AlreadyLinked when the user already has the car (including when
    a concurrent request won the race to the unique (user_id, car_id) key).
    """
    with SessionLocal() as db:
        user = lock_user(db, user_id)

        car = find_by_license_plate(db, license_plate)
        if not car:
            raise CarNotFound()
        if not verify_pin(car, pin):
            logger.info("Rejected PIN for car %s (user %s)", car.id, user_id)
            raise InvalidCredential()

        try:
            is_primary = _link(db, user, car)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AlreadyLinked()

        logger.info("User %s linked car %s (primary=%s)", user_id, car.id, is_primary)
        return {"car": serialize_car(car), "is_primary": is_primary}


def create_new(
    user_id: uuid.UUID,
    attrs: Mapping,
    pin: str,
    image: Optional[Mapping] = None,
) -> Dict:
    """
    Register a new car, optionally attach its image, and link it to the user.

    `image` is {"data": bytes, "content_type": str}. Image problems are logged
    and the car is created without one. Any other failure rolls the whole
    transaction back, so the car row never outlives a failed link, and a blob
    uploaded along the way is removed again.
    """
    uploaded_ref = None
    with SessionLocal() as db:
        try:
            user = lock_user(db, user_id)
            car = create_car(db, attrs, pin)

            if image:
                try:
                    image_service.validate_image(image["data"], image["content_type"])
                    uploaded_ref = image_service.attach(car, image["data"], image["content_type"], kind="car")
                except Exception as e:
                    logger.warning("Car %s created without image: %s", car.id, e)

            is_primary = _link(db, user, car)
            db.commit()
        except Exception:
            db.rollback()
            if uploaded_ref:
                image_service.delete_ref(uploaded_ref, context="create_rollback")
            raise

        logger.info("User %s created car %s (primary=%s)", user_id, car.id, is_primary)
        return {
            "car": serialize_car(car),
            "is_primary": is_primary,
            "image_url": image_service.resolve_url(car.image_ref),
        }
