# services/link_store.py
"""Repository for user <-> car ownership links. Callers own the transaction."""
from __future__ import annotations
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session, joinedload

from models import OwnershipLink


def find_link(db: Session, user_id: uuid.UUID, car_id: uuid.UUID) -> Optional[OwnershipLink]:
    return (
        db.query(OwnershipLink)
        .options(joinedload(OwnershipLink.car))
        .filter(OwnershipLink.user_id == user_id, OwnershipLink.car_id == car_id)
        .first()
    )


def find_primary_link(db: Session, user_id: uuid.UUID) -> Optional[OwnershipLink]:
    return (
        db.query(OwnershipLink)
        .options(joinedload(OwnershipLink.car))
        .filter(OwnershipLink.user_id == user_id, OwnershipLink.is_primary.is_(True))
        .first()
    )


def count_links(db: Session, user_id: uuid.UUID) -> int:
    return (
        db.query(func.count())
        .select_from(OwnershipLink)
        .filter(OwnershipLink.user_id == user_id)
        .scalar()
    )


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _recency_key(link: OwnershipLink):
    # used links before never-used ones, newest first
    return (link.last_used_at is not None, _naive_utc(link.last_used_at))


def list_links(db: Session, user_id: uuid.UUID) -> List[OwnershipLink]:
    """All links of a user, most recently used first; ties keep link creation order."""
    links = (
        db.query(OwnershipLink)
        .options(joinedload(OwnershipLink.car))
        .filter(OwnershipLink.user_id == user_id)
        .order_by(OwnershipLink.created_at.asc())
        .all()
    )
    return sorted(links, key=_recency_key, reverse=True) if links else []


def insert_link(
    db: Session,
    user_id: uuid.UUID,
    car_id: uuid.UUID,
    *,
    is_primary: bool = False,
    last_used_at: Optional[datetime] = None,
) -> OwnershipLink:
    """
    Insert a new (user, car) link and flush it.

    Never touches an existing link: a duplicate surfaces here as an
    IntegrityError from the (user_id, car_id) primary key.
    """
    link = OwnershipLink(
        user_id=user_id,
        car_id=car_id,
        is_primary=is_primary,
        last_used_at=last_used_at,
    )
    db.add(link)
    db.flush()
    return link


def delete_link(db: Session, user_id: uuid.UUID, car_id: uuid.UUID) -> bool:
    rows = (
        db.query(OwnershipLink)
        .filter(OwnershipLink.user_id == user_id, OwnershipLink.car_id == car_id)
        .delete(synchronize_session="fetch")
    )
    db.flush()
    return rows > 0


def clear_primary(db: Session, user_id: uuid.UUID) -> None:
    db.execute(
        update(OwnershipLink)
        .where(OwnershipLink.user_id == user_id, OwnershipLink.is_primary.is_(True))
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )


def mark_primary(db: Session, user_id: uuid.UUID, car_id: uuid.UUID) -> bool:
    result = db.execute(
        update(OwnershipLink)
        .where(OwnershipLink.user_id == user_id, OwnershipLink.car_id == car_id)
        .values(is_primary=True)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0
