"""Asset storage: Supabase Storage over HTTP, or a local public upload directory."""

from __future__ import annotations

import logging
import mimetypes
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List
from urllib.parse import quote

import httpx

from app.errors import StorageError, UploadRejectedError

logger = logging.getLogger("folio.storage")

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
LOCAL_MIME_TYPES = ("image/png", "image/jpeg", "image/webp")
_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "application/pdf": "pdf",
}


def _supabase_url() -> str:
    return (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")


def _supabase_service_role_key() -> str:
    return (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()


def using_supabase_storage() -> bool:
    return bool(_supabase_url() and _supabase_service_role_key())


def storage_bucket() -> str:
    return (os.getenv("SUPABASE_STORAGE_BUCKET") or "public").strip()


def public_dir() -> Path:
    return Path(os.getenv("FOLIO_PUBLIC_DIR", "public"))


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def extension(self) -> str:
        name_ext = Path(self.filename or "").suffix.lstrip(".").lower()
        if name_ext:
            return name_ext
        guessed = _EXTENSIONS.get(self.content_type) or (mimetypes.guess_extension(self.content_type or "") or "").lstrip(".")
        return guessed or "bin"


def format_size(max_bytes: int) -> str:
    mb = max_bytes / (1024 * 1024)
    return f"{mb:g}MB"


def validate_upload(file: UploadedFile, mime_types: Iterable[str], max_bytes: int, field: str | None = None) -> None:
    allowed = list(mime_types)
    if allowed and file.content_type not in allowed:
        raise UploadRejectedError(
            f"File type {file.content_type or 'unknown'} is not allowed",
            path=field,
            detail={"allowed": allowed, "content_type": file.content_type},
        )
    if file.size > max_bytes:
        raise UploadRejectedError(
            f"File size exceeds {format_size(max_bytes)} limit",
            path=field,
            detail={"size": file.size, "max_bytes": max_bytes},
        )


class SupabaseBlobStore:
    kind = "blob"

    def __init__(self, url: str | None = None, service_key: str | None = None, bucket: str | None = None) -> None:
        self._url = (url or _supabase_url()).rstrip("/")
        self._key = service_key or _supabase_service_role_key()
        self.bucket = bucket or storage_bucket()

    def _headers(self, content_type: str | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self._key}",
            "apikey": self._key,
            "x-upsert": "true",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def new_path(self, folder: str, ext: str) -> str:
        return f"{folder}/{int(time.time() * 1000)}.{ext}"

    def upload(self, path: str, data: bytes, mime_type: str | None = None) -> str:
        url = f"{self._url}/storage/v1/object/{self.bucket}/{quote(path, safe='/')}"
        with httpx.Client(timeout=30.0) as client:
            res = client.post(url, headers=self._headers(mime_type), content=data)
        if res.status_code >= 400:
            logger.warning("storage_upload_failed bucket=%s path=%s status=%s", self.bucket, path, res.status_code)
            raise StorageError(
                f"Upload failed with status {res.status_code}",
                path=path,
                detail={"status": res.status_code, "body": res.text[:500]},
            )
        return path

    def remove(self, paths: List[str]) -> None:
        if not paths:
            return
        url = f"{self._url}/storage/v1/object/{self.bucket}"
        with httpx.Client(timeout=30.0) as client:
            res = client.request("DELETE", url, headers=self._headers("application/json"), json={"prefixes": list(paths)})
        # Missing objects are fine during cleanup.
        if res.status_code >= 500:
            logger.warning("storage_remove_failed bucket=%s paths=%s status=%s", self.bucket, paths, res.status_code)
            raise StorageError(f"Remove failed with status {res.status_code}", detail={"paths": list(paths)})

    def public_url(self, path: str) -> str:
        return f"{self._url}/storage/v1/object/public/{self.bucket}/{quote(path, safe='/')}"


class LocalFileStore:
    """Files written under ``<public dir>/uploads/<folder>/`` and served by the web root."""

    kind = "local"

    def __init__(
        self,
        root: Path | str | None = None,
        url_prefix: str = "/uploads",
        mime_types: Iterable[str] = LOCAL_MIME_TYPES,
        max_bytes: int = MAX_UPLOAD_BYTES,
        base_url: str | None = None,
    ) -> None:
        self.root = Path(root) if root is not None else public_dir()
        self.url_prefix = "/" + url_prefix.strip("/")
        self.mime_types = tuple(mime_types)
        self.max_bytes = max_bytes
        self.base_url = (base_url if base_url is not None else os.getenv("FOLIO_PUBLIC_BASE_URL", "")).rstrip("/")

    def new_path(self, folder: str, ext: str) -> str:
        return f"{self.url_prefix}/{folder}/{secrets.token_hex(6)}.{ext}"

    def _resolve(self, path: str) -> Path:
        if not path.startswith(self.url_prefix + "/"):
            raise StorageError("Path is outside the upload directory", path=path)
        uploads = (self.root / self.url_prefix.lstrip("/")).resolve()
        target = (self.root / path.lstrip("/")).resolve()
        if uploads not in target.parents:
            raise StorageError("Path is outside the upload directory", path=path)
        return target

    def upload(self, path: str, data: bytes, mime_type: str | None = None) -> str:
        if self.mime_types and mime_type not in self.mime_types:
            raise UploadRejectedError(
                f"File type {mime_type or 'unknown'} is not allowed",
                detail={"allowed": list(self.mime_types), "content_type": mime_type},
            )
        if len(data) > self.max_bytes:
            raise UploadRejectedError(
                f"File size exceeds {format_size(self.max_bytes)} limit",
                detail={"size": len(data), "max_bytes": self.max_bytes},
            )
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def remove(self, paths: List[str]) -> None:
        for path in paths:
            try:
                self._resolve(path).unlink()
            except (OSError, StorageError) as exc:
                logger.warning("storage_unlink_failed path=%s error=%s", path, exc)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()


def build_blob_store():
    if using_supabase_storage():
        store = SupabaseBlobStore()
        logger.info("storage_backend=supabase bucket=%s", store.bucket)
        return store
    store = LocalFileStore(mime_types=())
    logger.info("storage_backend=local root=%s", store.root)
    return store
