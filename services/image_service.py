# services/image_service.py
"""
Image attachment lifecycle for cars and user profiles.

An entity (``Car`` or ``User``) holds at most one image through its
``image_ref`` column, a blob name in the blob store (or, for rows written by
older clients, a full URL). Replacing or removing the image updates the
pointer first-class; cleaning up the physical blob is best effort and never
fails the operation.
"""
import base64
import binascii
import io
import logging
import os
import re
import uuid
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from requests_toolbelt.multipart import decoder as mp
from PIL import Image

from db import SessionLocal
from models import Car, User
from services import blob_service
from services.errors import NotLinked
from services.link_store import find_link

logger = logging.getLogger(__name__)

class BadRequest(Exception): ...

ALLOWED_CONTENT = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024

# kind -> (blob folder, width, height, quality)
IMAGE_PROFILES = {
    "car":     ("car_images", 600, 400, 80),
    "profile": ("profile_images", 400, 400, 80),
}

PUBLIC_BASE_URL = os.getenv("IMAGE_PUBLIC_BASE_URL")

_DATA_URI = re.compile(r"^data:image/(\w+);base64,", re.IGNORECASE)


# ───────────── Payload parsing / validation ───────────────────────────────────
def validate_image(data: bytes, content_type: str) -> None:
    if not data:
        raise BadRequest("Empty file")
    if content_type not in ALLOWED_CONTENT:
        raise BadRequest("Only JPEG, PNG, GIF or WEBP images are accepted")
    if len(data) > MAX_IMAGE_BYTES:
        raise BadRequest("The image must not exceed 5MB")
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
    except Exception:
        raise BadRequest("The file is not a valid image")


def is_data_uri(value) -> bool:
    return isinstance(value, str) and bool(_DATA_URI.match(value))


def decode_data_uri(value: str) -> Tuple[bytes, str]:
    """Decode a 'data:image/<type>;base64,...' string into (bytes, content_type)."""
    m = _DATA_URI.match(value) if isinstance(value, str) else None
    if not m:
        raise BadRequest("Expected a base64 image data URI")
    subtype = m.group(1).lower()
    content_type = "image/jpeg" if subtype == "jpg" else f"image/{subtype}"
    try:
        data = base64.b64decode(value[m.end():], validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("Invalid base64 image data")
    return data, content_type


def parse_multipart(req) -> Tuple[Dict[str, str], Dict[str, Dict]]:
    """
    Parse multipart/form-data from an Azure Functions HttpRequest.
    Returns (fields, files); files map a field name to
    {"filename": ..., "content_type": ..., "data": bytes}.
    """
    ctype = req.headers.get("content-type") or req.headers.get("Content-Type")
    if not ctype or "multipart/form-data" not in ctype:
        raise BadRequest("Expected multipart/form-data")

    parts = mp.MultipartDecoder(req.get_body(), ctype).parts
    if not parts:
        raise BadRequest("No multipart parts found")

    fields: Dict[str, str] = {}
    files: Dict[str, Dict] = {}
    for p in parts:
        disp = p.headers.get(b"Content-Disposition", b"").decode("utf-8", "ignore")
        name = filename = None
        for token in disp.split(";"):
            token = token.strip()
            if token.startswith("name="):
                name = token.split("=", 1)[1].strip().strip('"')
            elif token.startswith("filename="):
                filename = token.split("=", 1)[1].strip().strip('"')
        if not name:
            continue
        if filename is None:
            fields[name] = p.text
            continue
        files[name] = {
            "filename": filename or "upload.bin",
            "content_type": p.headers.get(b"Content-Type", b"application/octet-stream").decode("utf-8", "ignore"),
            "data": p.content,
        }
    return fields, files


# ───────────── Lifecycle ──────────────────────────────────────────────────────
def is_url(ref: Optional[str]) -> bool:
    if not ref:
        return False
    parsed = urlparse(ref)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def ref_variants(ref: str) -> List[str]:
    """
    Candidate blob names for a stored ref, most likely first.

    Uploads made over the app's history were stored with and without a
    leading slash and a 'public/' prefix, and some rows hold a full URL.
    """
    candidates = []
    if is_url(ref):
        path = urlparse(ref).path.lstrip("/")
        candidates += [path, path[len("storage/"):] if path.startswith("storage/") else path]
        ref = candidates[-1]
    stripped = ref.lstrip("/")
    bare = stripped[len("public/"):] if stripped.startswith("public/") else stripped
    candidates += [ref, stripped, bare, "public/" + bare]
    seen, variants = set(), []
    for c in candidates:
        if c and c not in seen:
            seen.add(c)
            variants.append(c)
    return variants


def delete_ref(ref: Optional[str], store=None, context: str = "image") -> bool:
    """Best-effort delete of a stored ref, trying each path variant. Never raises."""
    if not ref:
        return False
    store = store or blob_service.get_blob_store()
    for path in ref_variants(ref):
        try:
            if store.exists(path):
                store.delete(path)
                logger.info("[%s] deleted blob %s", context, path)
                return True
        except Exception as e:
            logger.warning("[%s] could not check/delete blob %s: %s", context, path, e)
    logger.warning("[%s] blob not found under any path variant: %s", context, ref)
    return False


def attach(entity, data: bytes, content_type: str, kind: str = "car", store=None) -> str:
    """
    Replace the entity's image with `data` and return the new ref.

    The old blob is removed best-effort before the upload, the new blob is
    fitted to the kind's box (a failed resize keeps the original upload) and
    `entity.image_ref` is pointed at it. The caller commits.
    """
    store = store or blob_service.get_blob_store()
    folder, width, height, quality = IMAGE_PROFILES[kind]
    context = f"{kind}_{entity.id}"

    if entity.image_ref:
        delete_ref(entity.image_ref, store, context)

    new_ref = store.put(data, prefix=f"{folder}/{kind}_{entity.id}", content_type=content_type)
    try:
        store.resize(new_ref, width, height, quality)
    except Exception as e:
        logger.warning("[%s] could not resize %s: %s", context, new_ref, e)

    entity.image_ref = new_ref
    logger.info("[%s] image set to %s", context, new_ref)
    return new_ref


def detach(entity, store=None) -> bool:
    """Clear the entity's image pointer; returns whether the blob was actually deleted."""
    deleted = False
    if entity.image_ref:
        try:
            deleted = delete_ref(entity.image_ref, store, f"image_{entity.id}")
        except Exception as e:
            logger.warning("blob cleanup failed for %s: %s", entity.image_ref, e)
    entity.image_ref = None
    return deleted


def resolve_url(ref: Optional[str]) -> Optional[str]:
    if not ref:
        return None
    if is_url(ref):
        return ref
    if PUBLIC_BASE_URL:
        return f"{PUBLIC_BASE_URL.rstrip('/')}/{ref.lstrip('/')}"
    return blob_service.get_blob_store().url(ref)


def _discard_blob(ref: str) -> None:
    try:
        delete_ref(ref, context="rollback")
    except Exception:
        logger.warning("could not discard blob %s", ref, exc_info=True)


# ───────────── Car images ─────────────────────────────────────────────────────
def _car_summary(car: Car) -> Dict:
    return {
        "id":            str(car.id),
        "license_plate": car.license_plate,
        "brand":         car.brand,
        "model":         car.model,
        "car_image":     car.image_ref,
        "car_image_url": resolve_url(car.image_ref),
    }


def _locked_linked_car(db, user_id: uuid.UUID, car_id: uuid.UUID) -> Car:
    if not find_link(db, user_id, car_id):
        raise NotLinked("You do not have access to this car or it does not exist")
    return db.query(Car).filter(Car.id == car_id).with_for_update().one()


def upload_car_image(user_id: uuid.UUID, car_id: uuid.UUID, data: bytes, content_type: str) -> Dict:
    validate_image(data, content_type)
    with SessionLocal() as db:
        car = _locked_linked_car(db, user_id, car_id)
        new_ref = attach(car, data, content_type, kind="car")
        try:
            db.commit()
        except Exception:
            db.rollback()
            _discard_blob(new_ref)
            raise
        return {"image_url": resolve_url(car.image_ref), "car": _car_summary(car)}


def delete_car_image(user_id: uuid.UUID, car_id: uuid.UUID) -> Dict:
    with SessionLocal() as db:
        car = _locked_linked_car(db, user_id, car_id)
        if not car.image_ref:
            logger.info("car %s has no image to delete", car.id)
        deleted = detach(car)
        db.commit()
        return {"deleted": deleted, "car": _car_summary(car)}


# ───────────── Profile images ─────────────────────────────────────────────────
def upload_profile_image(user_id: uuid.UUID, data: bytes, content_type: str) -> Dict:
    validate_image(data, content_type)
    with SessionLocal() as db:
        user = db.query(User).filter(User.id == user_id).with_for_update().one()
        new_ref = attach(user, data, content_type, kind="profile")
        try:
            db.commit()
        except Exception:
            db.rollback()
            _discard_blob(new_ref)
            raise
        return {"profile_image": resolve_url(user.image_ref)}


def delete_profile_image(user_id: uuid.UUID) -> Dict:
    with SessionLocal() as db:
        user = db.query(User).filter(User.id == user_id).with_for_update().one()
        deleted = detach(user)
        db.commit()
        return {"deleted": deleted}
