# services/primacy_service.py
"""
Primary-car and last-used bookkeeping for a user's linked cars.

Invariants kept by every function here, for any user with at least one link:
exactly one link is primary, and ``User.last_used_car_id`` is either NULL or
a car the user is linked to. Each operation is one transaction holding the
user row lock, so readers never see zero or two primaries.
"""
from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict

from sqlalchemy.orm import Session

from db import SessionLocal
from models import User
from services.car_registry import serialize_car
from services.errors import NotLinked, SoleCarUndetachable
from services.link_store import (
    clear_primary,
    count_links,
    delete_link,
    find_link,
    find_primary_link,
    list_links,
    mark_primary,
)
from services.linking_service import lock_user

logger = logging.getLogger(__name__)


def _promote(db: Session, user_id: uuid.UUID, car_id: uuid.UUID) -> None:
    # demote first: the partial unique index allows one primary per user
    clear_primary(db, user_id)
    mark_primary(db, user_id, car_id)


def list_user_cars(user_id: uuid.UUID) -> Dict:
    with SessionLocal() as db:
        user = db.query(User).filter(User.id == user_id).one()
        links = list_links(db, user_id)

        cars = [serialize_car(link.car, link) for link in links]
        by_id = {link.car_id: car for link, car in zip(links, cars)}

        last_used = by_id.get(user.last_used_car_id) or (cars[0] if cars else None)
        primary = next((car for car in cars if car["is_primary"]), None)
        return {"cars": cars, "last_used_car": last_used, "primary_car": primary}


def set_primary(user_id: uuid.UUID, car_id: uuid.UUID) -> Dict:
    with SessionLocal() as db:
        lock_user(db, user_id)
        link = find_link(db, user_id, car_id)
        if not link:
            raise NotLinked()

        current = find_primary_link(db, user_id)
        if current is None or current.car_id != car_id:
            _promote(db, user_id, car_id)
            db.commit()
            logger.info("User %s set car %s as primary", user_id, car_id)
        return {"car": serialize_car(link.car, link)}


def set_last_used(user_id: uuid.UUID, car_id: uuid.UUID) -> Dict:
    with SessionLocal() as db:
        user = lock_user(db, user_id)
        link = find_link(db, user_id, car_id)
        if not link:
            raise NotLinked()

        link.last_used_at = datetime.now(timezone.utc)
        user.last_used_car_id = car_id
        db.commit()
        return {"car": serialize_car(link.car, link)}


def unlink(user_id: uuid.UUID, car_id: uuid.UUID) -> None:
    """
    Remove the user's link to a car.

    The user's only car cannot be unlinked. When the removed link was the
    primary, the most recently used remaining car is promoted (never-used
    cars rank last, ties go to the oldest link). A last-used pointer at the
    removed car is cleared.
    """
    with SessionLocal() as db:
        user = lock_user(db, user_id)
        link = find_link(db, user_id, car_id)
        if not link:
            raise NotLinked()
        if count_links(db, user_id) == 1:
            raise SoleCarUndetachable()

        was_primary = bool(link.is_primary)
        delete_link(db, user_id, car_id)

        if was_primary:
            # candidates are read after the delete so the removed link can't win
            remaining = list_links(db, user_id)
            if remaining:
                _promote(db, user_id, remaining[0].car_id)
                logger.info("User %s: car %s promoted to primary", user_id, remaining[0].car_id)

        if user.last_used_car_id == car_id:
            user.last_used_car_id = None

        db.commit()
        logger.info("User %s unlinked car %s", user_id, car_id)
