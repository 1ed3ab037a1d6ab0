"""MinIO client singleton and the storage adapter used by preview controllers."""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, Callable, Protocol
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error

from bucketlens.config import get_settings
from bucketlens.preview.errors import FetchCancelledError, FetchFailedError

if TYPE_CHECKING:
    from bucketlens.preview.cancellation import CancellationToken

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("NoSuchKey", "NoSuchObject", "NoSuchBucket")


class StorageError(Exception):
    """Storage operation error."""
    pass


@lru_cache(maxsize=1)
def get_minio_client() -> Minio:
    """Get MinIO client singleton.

    Raises:
        StorageError: If MinIO is not configured or the default bucket is unreachable
    """
    settings = get_settings()
    endpoint = (settings.minio_endpoint or "").strip()
    if not endpoint:
        raise StorageError("MinIO endpoint is not configured")

    secure = settings.minio_secure
    if endpoint.startswith("http://") or endpoint.startswith("https://"):
        parsed = urlparse(endpoint)
        secure = parsed.scheme == "https"
        endpoint = (parsed.netloc or parsed.path).rstrip("/")

    access_key = (settings.minio_access_key or "").strip()
    secret_key = (settings.minio_secret_key or "").strip()
    if not access_key or not secret_key:
        raise StorageError("MinIO credentials are not configured")

    region = (settings.minio_region or "").strip() or None
    client = Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure, region=region)

    # Buckets are owned elsewhere; only verify the default one is reachable.
    bucket = (settings.minio_default_bucket or "").strip()
    if bucket:
        try:
            exists = client.bucket_exists(bucket)
        except S3Error as exc:
            raise StorageError(f"Failed to check MinIO bucket: {exc.code}") from exc
        except Exception as exc:
            # Network issues (connection refused/timeouts) may raise non-S3 exceptions.
            raise StorageError(f"Failed to check MinIO bucket: {exc}") from exc
        if not exists:
            raise StorageError(f"MinIO bucket does not exist: {bucket}")

    return client


class StorageAdapter(Protocol):
    async def get_retrieval_url(self, container: str, key: str, token: "CancellationToken") -> str: ...

    async def get_byte_range(
        self,
        container: str,
        key: str,
        max_bytes: int,
        token: "CancellationToken",
    ) -> bytes: ...


def _close_response(response) -> None:
    try:
        response.close()
    finally:
        try:
            response.release_conn()
        except Exception:
            pass


class MinioStorageAdapter:
    """Signed URLs and ranged reads against MinIO.

    The SDK is blocking, so client setup and calls run in worker threads.
    Reads poll the cancellation token between chunks, and cancelling closes
    the HTTP response to abort a read that is blocked on the network.
    """

    def __init__(
        self,
        client_factory: Callable[[], Minio] = get_minio_client,
        *,
        url_expiry_sec: int = 3600,
        chunk_size: int = 32 * 1024,
    ) -> None:
        self._client_factory = client_factory
        self.url_expiry = timedelta(seconds=url_expiry_sec)
        self.chunk_size = chunk_size

    def _client(self) -> Minio:
        try:
            return self._client_factory()
        except StorageError as exc:
            raise FetchFailedError("Storage service unavailable", detail=str(exc)) from exc

    async def get_retrieval_url(self, container: str, key: str, token: "CancellationToken") -> str:
        token.raise_if_cancelled()
        client = await asyncio.to_thread(self._client)
        try:
            url = await asyncio.to_thread(
                client.presigned_get_object,
                bucket_name=container,
                object_name=key,
                expires=self.url_expiry,
            )
        except S3Error as exc:
            raise FetchFailedError("Failed to sign object URL", detail=f"{exc.code}: {exc}") from exc
        except Exception as exc:
            raise FetchFailedError("Failed to sign object URL", detail=str(exc)) from exc
        token.raise_if_cancelled()
        return url

    async def get_byte_range(
        self,
        container: str,
        key: str,
        max_bytes: int,
        token: "CancellationToken",
    ) -> bytes:
        token.raise_if_cancelled()
        if max_bytes <= 0:
            return b""
        client = await asyncio.to_thread(self._client)
        logger.debug("read_prefix bucket=%s key=%s max_bytes=%s", container, key, max_bytes)
        return await asyncio.to_thread(self._read_prefix, client, container, key, max_bytes, token)

    def _read_prefix(
        self,
        client: Minio,
        container: str,
        key: str,
        max_bytes: int,
        token: "CancellationToken",
    ) -> bytes:
        try:
            response = client.get_object(bucket_name=container, object_name=key, offset=0, length=max_bytes)
        except S3Error as exc:
            if getattr(exc, "code", "") == "InvalidRange":
                # Empty object: there is no first byte to range over.
                return b""
            if getattr(exc, "code", "") in NOT_FOUND_CODES:
                raise FetchFailedError("Object not found", detail=f"{exc.code}: {container}/{key}") from exc
            raise FetchFailedError("Failed to read object", detail=f"{exc.code}: {exc}") from exc
        except Exception as exc:
            if token.cancelled:
                raise FetchCancelledError("Preview request was cancelled") from exc
            raise FetchFailedError("Failed to read object", detail=str(exc)) from exc

        unregister = token.add_callback(response.close)
        try:
            chunks: list[bytes] = []
            received = 0
            for chunk in response.stream(self.chunk_size):
                if token.cancelled:
                    break
                chunks.append(chunk)
                received += len(chunk)
                if received >= max_bytes:
                    break
            token.raise_if_cancelled()
            return b"".join(chunks)[:max_bytes]
        except FetchCancelledError:
            raise
        except Exception as exc:
            if token.cancelled:
                raise FetchCancelledError("Preview request was cancelled") from exc
            raise FetchFailedError("Failed to read object", detail=str(exc)) from exc
        finally:
            unregister()
            _close_response(response)
