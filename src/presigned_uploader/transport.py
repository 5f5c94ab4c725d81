import logging
from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from typing import BinaryIO

import httpx

from presigned_uploader.constants import DEFAULT_CHUNK_SIZE
from presigned_uploader.exceptions import (
    ForbiddenTransfer,
    MissingConfirmationToken,
    NetworkError,
    TransferFailed,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def _read_chunks(source: BinaryIO, size: int, chunk_size: int) -> Iterator[bytes]:
    remaining = size
    while remaining > 0:
        chunk = source.read(min(chunk_size, remaining))
        if not chunk:
            raise ValueError(f"Source ended {remaining} bytes before its declared size")
        remaining -= len(chunk)
        yield chunk


def _slice_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield bytes(view[start : start + chunk_size])


def _extract_etag(response: httpx.Response) -> str:
    return response.headers.get("ETag", "").strip('"')


class PresignedPut:
    """PUT raw bytes to a pre-authorized URL and classify the outcome."""

    def __init__(self, client: httpx.AsyncClient, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize with a shared HTTP client.

        Args:
            client: httpx.AsyncClient used for every transfer
            chunk_size: Bytes handed to httpx per progress step
        """
        self.client = client
        self.chunk_size = chunk_size

    @staticmethod
    async def _track(
        chunks: Iterable[bytes], size: int, on_progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        sent = 0
        for chunk in chunks:
            yield chunk
            sent += len(chunk)
            if on_progress and size:
                on_progress(min(100.0, sent * 100 / size))

    async def _put(
        self,
        url: str,
        chunks: Iterable[bytes],
        size: int,
        headers: dict[str, str],
        on_progress: ProgressCallback | None,
    ) -> httpx.Response:
        headers = {"Content-Length": str(size), **headers}

        try:
            response = await self.client.put(
                url, headers=headers, content=self._track(chunks, size, on_progress)
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Upload failed due to network error: {exc}") from exc

        if response.status_code == 403:
            logger.warning("Storage backend refused the signed URL with 403")
            raise ForbiddenTransfer()
        if not response.is_success:
            raise TransferFailed(
                response.status_code,
                f"Upload failed with status {response.status_code}: {response.reason_phrase}",
            )

        return response


class SingleShotTransport(PresignedPut):
    """Upload a whole file with one PUT."""

    async def transfer(
        self,
        signed_url: str,
        source: BinaryIO,
        size: int,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> str | None:
        """
        Upload ``size`` bytes read from ``source``.

        Returns:
            The ETag reported by the backend, or None when it sent none
        """
        headers = {"Content-Type": content_type} if content_type else {}
        response = await self._put(
            signed_url,
            _read_chunks(source, size, self.chunk_size),
            size,
            headers,
            on_progress,
        )
        return _extract_etag(response) or None


class SegmentTransport(PresignedPut):
    """Upload one segment of a segmented upload; no Content-Type is sent."""

    async def transfer(
        self,
        signed_url: str,
        data: bytes,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        response = await self._put(
            signed_url,
            _slice_chunks(data, self.chunk_size),
            len(data),
            {},
            on_progress,
        )

        etag = _extract_etag(response)
        if not etag:
            raise MissingConfirmationToken("No ETag received for uploaded segment")

        return etag
