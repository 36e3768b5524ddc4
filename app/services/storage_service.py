"""
Storage Service - fetches original photo files from Supabase Storage.
"""

import logging
from typing import Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The original file could not be fetched."""


class StorageService:
    """Read access to the private bucket holding un-watermarked originals."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.supabase_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.supabase_service_role_key
        self.bucket = bucket or settings.original_bucket_name
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._transport = transport

    async def download_original(self, file_path: str) -> bytes:
        """Download an original file by its storage path."""
        if not self.base_url:
            raise StorageError("Storage not configured")

        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{file_path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Storage download failed for {file_path}: {e}")
            raise StorageError(str(e)) from e

        if response.status_code != 200:
            logger.error(f"Storage returned {response.status_code} for {file_path}")
            raise StorageError(f"Storage returned {response.status_code}")

        return response.content

    async def ping(self) -> bool:
        """Reachability check for the health endpoint."""
        if not self.base_url:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/storage/v1/bucket",
                    headers={
                        "Authorization": f"Bearer {self.service_key}",
                        "apikey": self.service_key,
                    },
                )
            return response.status_code == 200
        except httpx.HTTPError:
            return False


def get_storage_service() -> StorageService:
    """Dependency for the storage client."""
    return StorageService()
