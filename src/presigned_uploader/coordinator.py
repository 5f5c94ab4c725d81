"""HTTP client for the upload coordinator.

The coordinator issues pre-authorized URLs and finalizes uploads. Each method
here is exactly one request; retries belong to the caller.
"""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from presigned_uploader.constants import DEFAULT_DOWNLOAD_EXPIRES
from presigned_uploader.exceptions import CoordinatorError, IncompleteManifest
from presigned_uploader.structs import (
    CompletedSegment,
    HealthStatus,
    SegmentedGrant,
    SingleUrlGrant,
    UploaderConfig,
)

logger = logging.getLogger(__name__)


class CoordinatorClient:
    """Typed façade over the coordinator's JSON endpoints."""

    def __init__(self, config: UploaderConfig, client: httpx.AsyncClient | None = None):
        """
        Initialize with uploader configuration.

        Args:
            config: UploaderConfig carrying the base URL and user id
            client: Optional shared httpx.AsyncClient; one is created otherwise
        """
        self.base_url = config.base_url.rstrip("/")
        self.user_id = config.user_id
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout))
        self._planned_segments: dict[str, int] = {}

    async def __aenter__(self) -> "CoordinatorClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _request(
        self, method: str, path: str, payload: dict | None = None, params: dict | None = None
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, json=payload, params=params)
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            logger.error(
                "Coordinator request failed: %s",
                exc,
                extra={"method": method, "path": path},
            )
            raise CoordinatorError(None, f"Coordinator unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            message = f"HTTP error! status: {response.status_code}"
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                message = data["error"].get("message") or message
            logger.error(
                "Coordinator answered %s for %s %s",
                response.status_code,
                method,
                path,
                extra={"status_code": response.status_code, "error_message": message},
            )
            raise CoordinatorError(response.status_code, message)

        return data

    @staticmethod
    def _field(data: Any, key: str, status: int = 200) -> Any:
        if not isinstance(data, dict) or data.get(key) is None:
            raise CoordinatorError(status, f"Coordinator response is missing '{key}'")
        return data[key]

    async def check_health(self) -> HealthStatus:
        """
        Probe the coordinator.

        A 4xx means the service is up but storage is not configured; no
        response or a 5xx means it is offline. Never raises.
        """
        try:
            data = await self._request("GET", "/health")
        except CoordinatorError as e:
            if e.status is not None and 400 <= e.status < 500:
                return HealthStatus(reachable=True, storage_configured=False)
            return HealthStatus(reachable=False, storage_configured=False)

        storage_configured = True
        if isinstance(data, dict):
            storage_configured = bool(data.get("storageConfigured", True))
        return HealthStatus(reachable=True, storage_configured=storage_configured)

    async def request_single_url(
        self, file_name: str, content_type: str, size: int | None = None
    ) -> SingleUrlGrant:
        payload = {"fileName": file_name, "contentType": content_type, "userId": self.user_id}
        if size is not None:
            payload["fileSize"] = size

        data = await self._request("POST", "/presigned-url", payload)
        return SingleUrlGrant(
            session_id=self._field(data, "sessionId"),
            signed_url=self._field(data, "signedUrl"),
        )

    async def confirm_single(self, session_id: str) -> str:
        data = await self._request("POST", "/confirm", {"sessionId": session_id})
        return self._field(data, "durableReference")

    async def initiate_segmented(
        self, file_name: str, content_type: str, size: int
    ) -> SegmentedGrant:
        """
        Open a segmented upload session.

        Returns:
            SegmentedGrant with one signed URL per segment, ordered by index
        """
        data = await self._request(
            "POST",
            "/multipart/initiate",
            {
                "fileName": file_name,
                "contentType": content_type,
                "fileSize": size,
                "userId": self.user_id,
            },
        )

        session_id = self._field(data, "sessionId")
        try:
            segment_urls = sorted(
                (int(entry["index"]), str(entry["signedUrl"]))
                for entry in self._field(data, "segmentUrls")
            )
            segment_size_bytes = int(self._field(data, "segmentSizeBytes"))
        except (KeyError, TypeError, ValueError) as exc:
            raise CoordinatorError(200, f"Malformed segmented upload grant: {exc}") from exc

        self._planned_segments[session_id] = len(segment_urls)
        return SegmentedGrant(
            session_id=session_id,
            segment_urls=segment_urls,
            segment_size_bytes=segment_size_bytes,
        )

    async def complete_segmented(
        self,
        session_id: str,
        completed_segments: Sequence[CompletedSegment],
        planned_count: int | None = None,
    ) -> str:
        """
        Finalize a segmented upload.

        Args:
            session_id: Session id from initiate_segmented
            completed_segments: Completed segments ordered by index
            planned_count: Number of planned segments; defaults to the count
                granted by initiate_segmented for this session

        Returns:
            Durable reference of the finished object

        Raises:
            IncompleteManifest: If fewer segments than planned are supplied
        """
        if planned_count is None:
            planned_count = self._planned_segments.get(session_id)
        if planned_count is not None and len(completed_segments) < planned_count:
            raise IncompleteManifest(
                f"Only {len(completed_segments)} of {planned_count} segments completed"
            )

        parts = [
            {"index": part.index, "confirmationToken": part.confirmation_token}
            for part in completed_segments
        ]
        data = await self._request(
            "POST", "/multipart/complete", {"sessionId": session_id, "parts": parts}
        )

        self._planned_segments.pop(session_id, None)
        return self._field(data, "durableReference")

    async def abort_segmented(self, session_id: str) -> bool:
        """
        Release a segmented session. Failures are logged, never raised.

        Returns:
            True if the coordinator acknowledged the abort
        """
        self._planned_segments.pop(session_id, None)
        try:
            await self._request("POST", "/multipart/abort", {"sessionId": session_id})
        except CoordinatorError as e:
            logger.warning(
                "Failed to abort segmented upload %s: %s",
                session_id,
                e,
                extra={"session_id": session_id, "status_code": e.status},
            )
            return False

        logger.info("Aborted segmented upload %s", session_id)
        return True

    async def list_uploads(self, user_id: str | None = None, status: str | None = None) -> Any:
        """List uploads known to the coordinator, optionally filtered."""
        params = {}
        if user_id:
            params["userId"] = user_id
        if status:
            params["status"] = status
        return await self._request("GET", "", params=params or None)

    async def get_upload_status(self, session_id: str) -> dict:
        return await self._request("GET", f"/{session_id}")

    async def delete_upload(self, session_id: str) -> dict:
        return await self._request("DELETE", f"/{session_id}")

    async def generate_download_url(
        self, durable_reference: str, expires_in: int = DEFAULT_DOWNLOAD_EXPIRES
    ) -> str:
        data = await self._request(
            "POST",
            "/download-url",
            {"durableReference": durable_reference, "expiresIn": expires_in},
        )
        return self._field(data, "signedUrl")
