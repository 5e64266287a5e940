"""Blob storage abstraction. Local filesystem for dev, Vercel Blob for production.

The core only needs put/delete/list by URL; everything else about the object
store is opaque to it.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import aiofiles
import aiofiles.os
import aiohttp

from codedrop.config import Settings
from codedrop.errors import StorageError

logger = logging.getLogger(__name__)

BLOB_API_VERSION = "7"
LIST_PAGE_SIZE = 1000
DEFAULT_PUBLIC_HOST_SUFFIX = "public.blob.vercel-storage.com"


@dataclass
class BlobObject:
    url: str
    pathname: str
    size: int
    uploaded_at: datetime


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BlobStore:
    """Interface every backend implements."""

    name = "base"

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "BlobStore":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def put(self, name: str, data: bytes, content_type: str) -> BlobObject:
        """Store ``data`` with public-read access. Returns the object and its public URL."""
        raise NotImplementedError

    async def delete(self, url: str) -> None:
        """Delete by URL. Deleting an absent object is a no-op."""
        raise NotImplementedError

    def owns(self, url: str) -> bool:
        """Whether ``url`` points into this store, i.e. ``delete`` can reclaim it."""
        raise NotImplementedError

    async def list(self) -> List[BlobObject]:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Writes blobs to a directory; the app serves them under ``/api/blobs/``."""

    name = "local"

    def __init__(self, base_path: Path, public_base_url: str):
        self.base_path = Path(base_path)
        self.url_prefix = f"{public_base_url.rstrip('/')}/api/blobs/"

    async def open(self) -> None:
        await aiofiles.os.makedirs(self.base_path, exist_ok=True)

    def path_for(self, name: str) -> Optional[Path]:
        """Resolve a blob name to its file, or None if the name could escape the directory."""
        if not name or "/" in name or "\\" in name or name.startswith("."):
            return None
        return self.base_path / name

    def owns(self, url: str) -> bool:
        return url.startswith(self.url_prefix) and self.path_for(unquote(url[len(self.url_prefix):])) is not None

    def url_for(self, name: str) -> str:
        return f"{self.url_prefix}{name}"

    async def put(self, name: str, data: bytes, content_type: str) -> BlobObject:
        file_path = self.path_for(name)
        if file_path is None:
            raise StorageError(f"Invalid blob name {name!r}")
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(str(e), url=str(file_path)) from e
        return BlobObject(
            url=self.url_for(name),
            pathname=name,
            size=len(data),
            uploaded_at=datetime.now(timezone.utc),
        )

    async def delete(self, url: str) -> None:
        if not url.startswith(self.url_prefix):
            raise StorageError("URL does not belong to this blob store", url=url)
        file_path = self.path_for(unquote(url[len(self.url_prefix):]))
        if file_path is None:
            raise StorageError("Invalid blob URL", url=url)
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(str(e), url=url) from e

    async def list(self) -> List[BlobObject]:
        try:
            names = await aiofiles.os.listdir(self.base_path)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(str(e), url=str(self.base_path)) from e

        blobs = []
        for name in names:
            file_path = self.path_for(name)
            if file_path is None:
                continue
            try:
                stat = await aiofiles.os.stat(file_path)
            except FileNotFoundError:
                continue
            blobs.append(BlobObject(
                url=self.url_for(name),
                pathname=name,
                size=stat.st_size,
                uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        return blobs


class VercelBlobStore(BlobStore):
    """Async client for the Vercel Blob REST API.

    Supports async context manager for connection pooling across calls. Falls
    back to a per-call session if used without ``open()``.
    """

    name = "vercel_blob"

    def __init__(
        self,
        token: str,
        api_url: str = "https://blob.vercel-storage.com",
        timeout: float = 60,
        public_host_suffix: str = DEFAULT_PUBLIC_HOST_SUFFIX,
    ):
        if not token:
            raise ValueError("BLOB_READ_WRITE_TOKEN not set. Cannot use Vercel Blob storage.")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.public_host_suffix = public_host_suffix.lower().lstrip(".")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def open(self) -> None:
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def owns(self, url: str) -> bool:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        return parsed.scheme == "https" and (
            host == self.public_host_suffix or host.endswith(f".{self.public_host_suffix}")
        )

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "authorization": f"Bearer {self.token}",
            "x-api-version": BLOB_API_VERSION,
        }
        if extra:
            headers.update(extra)
        return headers

    async def put(self, name: str, data: bytes, content_type: str) -> BlobObject:
        url = f"{self.api_url}/{name}"
        headers = self._headers({
            "x-content-type": content_type,
            "x-add-random-suffix": "1",
        })
        body = await self._request("PUT", url, headers=headers, data=data)
        if not body.get("url"):
            raise StorageError("Upload response did not include a blob URL", url=url)
        return BlobObject(
            url=body["url"],
            pathname=body.get("pathname", name),
            size=len(data),
            uploaded_at=datetime.now(timezone.utc),
        )

    async def delete(self, url: str) -> None:
        # The API treats unknown URLs as already deleted
        await self._request(
            "POST",
            f"{self.api_url}/delete",
            headers=self._headers({"content-type": "application/json"}),
            json={"urls": [url]},
        )

    async def list(self) -> List[BlobObject]:
        blobs: List[BlobObject] = []
        cursor: Optional[str] = None
        while True:
            params = {"limit": str(LIST_PAGE_SIZE)}
            if cursor:
                params["cursor"] = cursor
            body = await self._request("GET", self.api_url, headers=self._headers(), params=params)
            for item in body.get("blobs", []):
                try:
                    blobs.append(BlobObject(
                        url=item["url"],
                        pathname=item.get("pathname") or urlparse(item["url"]).path.lstrip("/"),
                        size=int(item.get("size", 0)),
                        uploaded_at=_parse_timestamp(item["uploadedAt"]),
                    ))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise StorageError(f"Malformed blob listing entry: {e!r}", url=self.api_url) from e
            cursor = body.get("cursor")
            if not body.get("hasMore") or not cursor:
                return blobs

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        if self._session:
            return await self._send(self._session, method, url, **kwargs)
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            return await self._send(session, method, url, **kwargs)

    @staticmethod
    async def _send(session: aiohttp.ClientSession, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise StorageError(
                        body[:500] or resp.reason or "No response body",
                        status=resp.status,
                        url=url,
                    )
                if resp.content_type != "application/json":
                    return {}
                try:
                    body = await resp.json()
                except ValueError as e:
                    raise StorageError(f"Unparsable response from blob store: {e}", status=resp.status, url=url) from e
                if not isinstance(body, dict):
                    raise StorageError("Unexpected response shape from blob store", status=resp.status, url=url)
                return body
        except StorageError:
            raise
        except asyncio.TimeoutError as e:
            raise StorageError("Request timed out, blob store did not respond in time", url=url) from e
        except aiohttp.ClientError as e:
            raise StorageError(str(e) or type(e).__name__, url=url) from e


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the backend selected by BLOB_STORAGE_TYPE."""
    if settings.BLOB_STORAGE_TYPE == "local":
        return LocalBlobStore(Path(settings.BLOB_STORAGE_PATH), settings.PUBLIC_BASE_URL)
    if settings.BLOB_STORAGE_TYPE == "vercel_blob":
        return VercelBlobStore(
            settings.BLOB_READ_WRITE_TOKEN,
            api_url=settings.BLOB_API_URL,
            timeout=settings.BLOB_TIMEOUT_SECONDS,
            public_host_suffix=settings.BLOB_PUBLIC_HOST_SUFFIX,
        )
    raise ValueError(f"Unknown storage type: {settings.BLOB_STORAGE_TYPE}")
