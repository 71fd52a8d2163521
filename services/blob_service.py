# services/blob_service.py
import io
import os
import uuid
import logging
import mimetypes
from typing import Optional, Tuple
from datetime import datetime, timedelta, timezone

from azure.core.exceptions import ResourceNotFoundError, ResourceExistsError
from azure.storage.blob import (
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
    BlobSasPermissions,
)
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────
# Config
# ────────────────────────────────────────────────────────────
_CONN_STR = os.environ.get("AZURE_BLOB_CONN_STRING")
_DEFAULT_CONTAINER = os.environ.get("AZURE_BLOB_CONTAINER", "public")
SAS_MINUTES = int(os.environ.get("AZURE_BLOB_SAS_MINUTES", "60"))


# ────────────────────────────────────────────────────────────
# Helpers
# ────────────────────────────────────────────────────────────
def _guess_ext(content_type: str, fallback: str = ".bin") -> str:
    exts = mimetypes.guess_all_extensions(content_type) or []
    return exts[0] if exts else fallback


def _parse_account(conn_str: str, primary_endpoint: str) -> Tuple[str, Optional[str], str]:
    """
    Returns (account_name, account_key|None, blob_endpoint_base)
    blob_endpoint_base looks like: http://127.0.0.1:10000/devstoreaccount1  (no trailing slash)
    """
    parts = dict(
        kv.split("=", 1)
        for kv in conn_str.split(";")
        if kv and "=" in kv
    )
    account = parts.get("AccountName")
    key = parts.get("AccountKey")
    endpoint = parts.get("BlobEndpoint") or primary_endpoint
    endpoint = endpoint[:-1] if endpoint.endswith("/") else endpoint
    return account, key, endpoint


def fit_image(data: bytes, width: int, height: int, quality: int = 80) -> bytes:
    """
    Crop/scale an encoded image to the width x height aspect ratio.

    Images larger than the box are fitted to it; smaller ones are only
    cropped to the aspect ratio and never scaled up. The original format is
    kept (JPEG re-encoded without alpha) at the given quality.
    """
    with Image.open(io.BytesIO(data)) as im:
        fmt = im.format or "JPEG"
        im = ImageOps.exif_transpose(im)
        scale = min(1.0, im.width / width, im.height / height)
        box = (max(1, round(width * scale)), max(1, round(height * scale)))
        fitted = ImageOps.fit(im, box, Image.LANCZOS)
        if fmt == "JPEG" and fitted.mode not in ("RGB", "L"):
            fitted = fitted.convert("RGB")
        out = io.BytesIO()
        fitted.save(out, format=fmt, quality=quality)
        return out.getvalue()


# ────────────────────────────────────────────────────────────
# Store
# ────────────────────────────────────────────────────────────
class BlobStore:
    """Image blob store over one Azure Blob Storage container. Refs are blob names."""

    def __init__(self, conn_str: str, container: str = _DEFAULT_CONTAINER):
        self._bsc = BlobServiceClient.from_connection_string(conn_str)
        self.container = container
        self._client = self._bsc.get_container_client(container)
        try:
            self._client.create_container()
        except ResourceExistsError:
            pass
        self._account, self._key, self._endpoint = _parse_account(conn_str, self._bsc.primary_endpoint)

    def exists(self, ref: str) -> bool:
        return self._client.get_blob_client(ref).exists()

    def put(self, data: bytes, *, prefix: str, content_type: str) -> str:
        """Upload raw bytes under `prefix/` and return the blob name to store in the DB."""
        ext = _guess_ext(content_type, ".jpg")
        name = f"{prefix}/{uuid.uuid4().hex}{ext}"
        self._client.get_blob_client(name).upload_blob(
            data,
            overwrite=False,
            content_settings=ContentSettings(content_type=content_type),
        )
        return name

    def get(self, ref: str) -> bytes:
        return self._client.get_blob_client(ref).download_blob().readall()

    def delete(self, ref: str) -> bool:
        try:
            self._client.delete_blob(ref, delete_snapshots="include")
            return True
        except ResourceNotFoundError:
            return False

    def resize(self, ref: str, width: int, height: int, quality: int = 80) -> None:
        blob = self._client.get_blob_client(ref)
        props = blob.get_blob_properties()
        resized = fit_image(blob.download_blob().readall(), width, height, quality)
        blob.upload_blob(
            resized,
            overwrite=True,
            content_settings=ContentSettings(content_type=props.content_settings.content_type),
        )

    def url(self, ref: str, minutes: int = SAS_MINUTES) -> str:
        """
        Read URL for the blob; a read-only SAS URL when the connection string
        carries an account key (works with Azurite and key-based Azure accounts).
        """
        base = f"{self._endpoint}/{self.container}/{ref}"
        if not self._key:
            return base
        sas = generate_blob_sas(
            account_name=self._account,
            container_name=self.container,
            blob_name=ref,
            account_key=self._key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(minutes=minutes),
        )
        return f"{base}?{sas}"


_store = None


def get_blob_store():
    """Process-wide store, created on first use from AZURE_BLOB_CONN_STRING."""
    global _store
    if _store is None:
        if not _CONN_STR:
            raise RuntimeError(
                "AZURE_BLOB_CONN_STRING is not set. For Azurite, use the devstore connection string."
            )
        _store = BlobStore(_CONN_STR, _DEFAULT_CONTAINER)
    return _store


def set_blob_store(store) -> None:
    """Swap the process-wide store (any object with the BlobStore methods)."""
    global _store
    _store = store
