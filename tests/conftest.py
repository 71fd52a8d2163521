"""
Pytest configuration and fixtures.

The app modules read their configuration at import time, so the environment
is pointed at a throwaway SQLite database (and a cheap bcrypt cost) before
anything from the app is imported. Each test gets a fresh schema and an
in-memory blob store.
"""
import io
import os
import pathlib
import sys
import tempfile
import uuid

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TMP_DIR = tempfile.mkdtemp(prefix="wipapp-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["PIN_HASH_ROUNDS"] = "4"
os.environ["IMAGE_PUBLIC_BASE_URL"] = "https://cdn.test/media"

from PIL import Image  # noqa: E402

from db import SessionLocal, engine  # noqa: E402
from models import Base, User  # noqa: E402
from services import blob_service  # noqa: E402


class FakeBlobStore:
    """In-memory stand-in for BlobStore with switchable failures."""

    def __init__(self):
        self.blobs = {}
        self.resized = []
        self.fail_put = False
        self.fail_delete = False
        self.fail_resize = False

    def exists(self, ref):
        return ref in self.blobs

    def put(self, data, *, prefix, content_type):
        if self.fail_put:
            raise RuntimeError("blob storage unavailable")
        name = f"{prefix}/{uuid.uuid4().hex}.img"
        self.blobs[name] = data
        return name

    def get(self, ref):
        return self.blobs[ref]

    def delete(self, ref):
        if self.fail_delete:
            raise RuntimeError("blob storage unavailable")
        return self.blobs.pop(ref, None) is not None

    def resize(self, ref, width, height, quality=80):
        if self.fail_resize:
            raise RuntimeError("cannot decode image")
        self.resized.append((ref, width, height, quality))

    def url(self, ref, minutes=60):
        return f"https://blob.test/{ref}"


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def blob_store():
    store = FakeBlobStore()
    blob_service.set_blob_store(store)
    yield store
    blob_service.set_blob_store(None)


@pytest.fixture
def make_user():
    def _make(email=None):
        with SessionLocal() as db:
            user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", name="Test", password_hash="x")
            db.add(user)
            db.commit()
            return user.id
    return _make


@pytest.fixture
def user_id(make_user):
    return make_user("driver@example.com")


@pytest.fixture
def png_bytes():
    def _png(size=(800, 600), fmt="PNG"):
        buf = io.BytesIO()
        Image.new("RGB", size, (200, 30, 30)).save(buf, format=fmt)
        return buf.getvalue()
    return _png


