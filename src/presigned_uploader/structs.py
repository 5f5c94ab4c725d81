from typing import NamedTuple

from presigned_uploader.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_PARALLEL_PARTS,
    DEFAULT_SEGMENT_THRESHOLD,
    DEFAULT_USER_ID,
    HEALTH_NOT_CONFIGURED,
    HEALTH_OFFLINE,
    HEALTH_ONLINE,
)


class UploaderConfig(NamedTuple):
    base_url: str = DEFAULT_BASE_URL
    user_id: str = DEFAULT_USER_ID
    segment_threshold_bytes: int = DEFAULT_SEGMENT_THRESHOLD
    max_concurrent_segments: int = DEFAULT_PARALLEL_PARTS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout: float | None = None


class UploadPlan(NamedTuple):
    file_name: str
    content_type: str
    total_size_bytes: int
    mode: str


class SegmentDescriptor(NamedTuple):
    index: int
    start_byte: int
    end_byte: int  # exclusive
    signed_url: str | None = None

    @property
    def size(self) -> int:
        return self.end_byte - self.start_byte


class CompletedSegment(NamedTuple):
    index: int
    confirmation_token: str


class SingleUrlGrant(NamedTuple):
    session_id: str
    signed_url: str


class SegmentedGrant(NamedTuple):
    session_id: str
    segment_urls: list[tuple[int, str]]
    segment_size_bytes: int


class HealthStatus(NamedTuple):
    reachable: bool
    storage_configured: bool

    @property
    def status(self) -> str:
        if not self.reachable:
            return HEALTH_OFFLINE
        if not self.storage_configured:
            return HEALTH_NOT_CONFIGURED
        return HEALTH_ONLINE


class UploadResult(NamedTuple):
    session_id: str | None
    durable_reference: str
    plan: UploadPlan
    parts: list[CompletedSegment]


class UploadFailure(NamedTuple):
    kind: str
    message: str
