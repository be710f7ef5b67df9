"""
Blob storage for uploaded intake documents.

Two backends share one interface:
- SupabaseBlobStore: Supabase Storage REST API over httpx
- LocalBlobStore: files under a local directory (development, tests)

All failures surface as StorageError so callers can tell a file
operation failure from a database failure.
"""
import logging
from pathlib import Path
from typing import Iterator, Optional

import httpx
from fastapi import Depends

from backoffice.core.config import Settings, get_settings
from backoffice.core.errors import StorageError

logger = logging.getLogger(__name__)


class BlobStore:
    """Path-addressed object store."""

    def upload(self, path: str, content: bytes, content_type: str = "application/pdf") -> str:
        raise NotImplementedError

    def signed_url(self, path: str, expires_in: int = 60) -> str:
        raise NotImplementedError

    def remove(self, path: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SupabaseBlobStore(BlobStore):
    """Blob store backed by a Supabase Storage bucket."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/storage/v1"
        self.bucket = bucket
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }
        self._client = client or httpx.Client(timeout=timeout)

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Storage request %s %s failed: %s", method, url, e)
            raise StorageError(f"storage request failed: {e}", original_error=e)

        if response.status_code >= 400:
            logger.error(
                "Storage %s %s returned %s: %s",
                method, url, response.status_code, response.text,
            )
            raise StorageError(f"storage error {response.status_code}: {response.text}")
        return response

    def upload(self, path: str, content: bytes, content_type: str = "application/pdf") -> str:
        url = f"{self.api_url}/object/{self.bucket}/{path}"
        # upsert disabled: an intake path is never reused
        self._request(
            "POST",
            url,
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return path

    def signed_url(self, path: str, expires_in: int = 60) -> str:
        url = f"{self.api_url}/object/sign/{self.bucket}/{path}"
        response = self._request("POST", url, json={"expiresIn": expires_in})
        body = response.json()
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            raise StorageError(f"no signed url returned for {path}")
        return f"{self.api_url}{signed}" if signed.startswith("/") else signed

    def remove(self, path: str) -> None:
        url = f"{self.api_url}/object/{self.bucket}"
        self._request("DELETE", url, json={"prefixes": [path]})

    def close(self) -> None:
        self._client.close()


class LocalBlobStore(BlobStore):
    """Blob store writing into a local directory."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageError(f"invalid storage path: {path}")
        return target

    def upload(self, path: str, content: bytes, content_type: str = "application/pdf") -> str:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise StorageError(f"storage write failed: {e}", original_error=e)
        return path

    def signed_url(self, path: str, expires_in: int = 60) -> str:
        target = self._resolve(path)
        if not target.exists():
            raise StorageError(f"object not found: {path}")
        return target.as_uri()

    def remove(self, path: str) -> None:
        try:
            self._resolve(path).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"storage delete failed: {e}", original_error=e)


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.STORAGE_BACKEND == "local":
        return LocalBlobStore(settings.STORAGE_LOCAL_ROOT)
    return SupabaseBlobStore(
        base_url=settings.STORAGE_URL,
        service_key=settings.STORAGE_SERVICE_KEY,
        bucket=settings.STORAGE_BUCKET,
    )


def get_blob_store(settings: Settings = Depends(get_settings)) -> Iterator[BlobStore]:
    """FastAPI dependency for the configured blob store."""
    store = build_blob_store(settings)
    try:
        yield store
    finally:
        store.close()
