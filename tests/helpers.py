"""Shared helpers for the test modules (fixtures live in conftest.py)."""
import json

import azure.functions as func

from db import SessionLocal
from models import User, Car, OwnershipLink
from auth.token import create_access_token


def fetch_links(user_id):
    """{car_id: (is_primary, last_used_at)} straight from the table."""
    with SessionLocal() as db:
        rows = db.query(OwnershipLink).filter(OwnershipLink.user_id == user_id).all()
        return {r.car_id: (r.is_primary, r.last_used_at) for r in rows}


def fetch_user(user_id):
    with SessionLocal() as db:
        user = db.query(User).filter(User.id == user_id).one()
        db.expunge(user)
        return user


def fetch_car(car_id):
    with SessionLocal() as db:
        car = db.query(Car).filter(Car.id == car_id).first()
        if car:
            db.expunge(car)
        return car


def assert_invariants(user_id):
    """Exactly one primary when linked; last-used pointer points at a linked car."""
    links = fetch_links(user_id)
    if links:
        assert sum(1 for primary, _ in links.values() if primary) == 1
    pointer = fetch_user(user_id).last_used_car_id
    if pointer is not None:
        assert pointer in links


def make_request(method, url, *, user_id=None, json_body=None, body=b"", headers=None, route_params=None):
    h = dict(headers or {})
    if user_id is not None:
        h["Authorization"] = f"Bearer {create_access_token({'sub': str(user_id)})}"
    if json_body is not None:
        body = json.dumps(json_body).encode()
        h["Content-Type"] = "application/json"
    return func.HttpRequest(
        method=method,
        url=url,
        headers=h,
        params={},
        route_params=route_params or {},
        body=body,
    )


def call(handler, req):
    """Invoke a blueprint-decorated Azure Function and decode its JSON body."""
    resp = handler.build().get_user_function()(req)
    raw = resp.get_body()
    return resp.status_code, (json.loads(raw) if raw else None)
