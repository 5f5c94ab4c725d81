"""Upload orchestration.

``UploadOrchestrator`` drives one upload attempt at a time through an explicit
state machine. Transitions not listed in ``TRANSITIONS`` raise
``IllegalTransition``, so "stop at the first failed segment" and "only
complete after every segment" hold by construction rather than by early
returns.
"""

import asyncio
import enum
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import BinaryIO

import httpx

from presigned_uploader.constants import MODE_SEGMENTED, MODE_SINGLE
from presigned_uploader.coordinator import CoordinatorClient
from presigned_uploader.exceptions import (
    IllegalTransition,
    InvalidPlan,
    UploadCancelled,
    UploadError,
    UrlStatusRejected,
)
from presigned_uploader.expiry import UrlStatus, inspect_url, utc_now
from presigned_uploader.planning import (
    build_upload_plan,
    calculate_segments,
    verify_manifest,
)
from presigned_uploader.structs import (
    CompletedSegment,
    SegmentDescriptor,
    UploaderConfig,
    UploadFailure,
    UploadPlan,
    UploadResult,
)
from presigned_uploader.transport import SegmentTransport, SingleShotTransport

logger = logging.getLogger(__name__)


class UploadState(enum.Enum):
    IDLE = "idle"
    VALIDATING_URL = "validating-url"
    GENERATING_URL = "generating-url"
    INITIATING_SEGMENTED = "initiating-segmented"
    UPLOADING = "uploading"
    UPLOADING_SEGMENTS = "uploading-segments"
    CONFIRMING = "confirming"
    COMPLETING_SEGMENTED = "completing-segmented"
    DONE = "done"
    ERROR = "error"


TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.IDLE: frozenset(
        {
            UploadState.VALIDATING_URL,
            UploadState.GENERATING_URL,
            UploadState.INITIATING_SEGMENTED,
            UploadState.ERROR,
        }
    ),
    UploadState.GENERATING_URL: frozenset({UploadState.VALIDATING_URL, UploadState.ERROR}),
    UploadState.INITIATING_SEGMENTED: frozenset({UploadState.VALIDATING_URL, UploadState.ERROR}),
    UploadState.VALIDATING_URL: frozenset(
        {UploadState.UPLOADING, UploadState.UPLOADING_SEGMENTS, UploadState.ERROR}
    ),
    UploadState.UPLOADING: frozenset(
        {UploadState.CONFIRMING, UploadState.DONE, UploadState.ERROR}
    ),
    UploadState.UPLOADING_SEGMENTS: frozenset(
        {UploadState.COMPLETING_SEGMENTED, UploadState.ERROR}
    ),
    UploadState.CONFIRMING: frozenset({UploadState.DONE, UploadState.ERROR}),
    UploadState.COMPLETING_SEGMENTED: frozenset({UploadState.DONE, UploadState.ERROR}),
    UploadState.DONE: frozenset({UploadState.IDLE}),
    UploadState.ERROR: frozenset({UploadState.IDLE}),
}

TERMINAL_STATES = frozenset({UploadState.DONE, UploadState.ERROR})


class UploadSession:
    """State of a single upload attempt, owned by one orchestrator."""

    def __init__(self, plan: UploadPlan):
        self.session_id: str | None = None
        self.plan = plan
        self.state = UploadState.IDLE
        self.progress = 0.0
        self.segments: list[SegmentDescriptor] = []
        self.completed_segments: list[CompletedSegment] = []
        self.completed_bytes = 0
        self.in_flight_bytes: dict[int, float] = {}
        self.durable_reference: str | None = None
        self.aborted = False

    @property
    def manifest(self) -> list[CompletedSegment]:
        return sorted(self.completed_segments, key=lambda part: part.index)

    @property
    def sent_percent(self) -> float:
        """Bytes of completed plus in-flight transfers, as a share of the file."""
        sent = self.completed_bytes + sum(self.in_flight_bytes.values())
        return min(100.0, sent * 100 / self.plan.total_size_bytes)

    def record_in_flight(self, key: int, size: int, percent: float) -> None:
        self.in_flight_bytes[key] = percent * size / 100

    def record_completed(self, index: int, size: int, confirmation_token: str) -> None:
        self.in_flight_bytes.pop(index, None)
        self.completed_bytes += size
        self.completed_segments.append(
            CompletedSegment(index=index, confirmation_token=confirmation_token)
        )


class UploadOrchestrator:
    """Move one local file into object storage through pre-authorized URLs."""

    def __init__(
        self,
        config: UploaderConfig,
        coordinator: CoordinatorClient | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_progress: Callable[[float], None] | None = None,
        on_state_change: Callable[[UploadState], None] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: UploaderConfig with threshold, concurrency and chunk size
            coordinator: CoordinatorClient; required for brokered uploads only
            http_client: Shared httpx.AsyncClient for storage transfers
            clock: Returns the current UTC time for URL expiry checks
            on_progress: Called with the cumulative percentage, never decreasing
            on_state_change: Called with every new state
        """
        self.config = config
        self.coordinator = coordinator
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout)
        )
        self.single_transport = SingleShotTransport(self.http_client, config.chunk_size)
        self.segment_transport = SegmentTransport(self.http_client, config.chunk_size)
        self.clock = clock
        self.on_progress = on_progress
        self.on_state_change = on_state_change

        self.state = UploadState.IDLE
        self.session: UploadSession | None = None
        self.error: UploadFailure | None = None
        self.url_status: UrlStatus | None = None

    async def __aenter__(self) -> "UploadOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    @property
    def progress(self) -> float:
        return self.session.progress if self.session else 0.0

    def reset(self) -> None:
        """Return to idle after ``done`` or ``error``, discarding the session."""
        if self.state is UploadState.IDLE:
            return
        if self.state not in TERMINAL_STATES:
            raise IllegalTransition(f"Cannot reset while {self.state.value}")
        self._transition(UploadState.IDLE)
        self.session = None
        self.error = None
        self.url_status = None

    async def upload(self, path: str | os.PathLike, content_type: str | None = None) -> UploadResult:
        """
        Upload a file through coordinator-issued URLs.

        Files above ``config.segment_threshold_bytes`` are sent in segments.

        Returns:
            UploadResult carrying the coordinator's durable reference

        Raises:
            UploadError: The classified failure; ``self.error`` holds its kind
        """
        if self.coordinator is None:
            raise ValueError("A CoordinatorClient is required for brokered uploads")
        self._require_idle()

        async def steps() -> UploadResult:
            plan = build_upload_plan(path, self.config.segment_threshold_bytes, content_type)
            self.session = UploadSession(plan)
            if plan.mode == MODE_SEGMENTED:
                return await self._upload_segmented(path)
            return await self._upload_single(path)

        return await self._attempt(steps)

    async def upload_to_url(
        self,
        path: str | os.PathLike,
        signed_url: str,
        content_type: str | None = None,
    ) -> UploadResult:
        """
        Upload a file to a pre-issued signed URL in one PUT.

        The URL is checked for expiry before any byte is sent. The durable
        reference is the URL without its signature query.
        """
        self._require_idle()

        async def steps() -> UploadResult:
            plan = build_upload_plan(path, self.config.segment_threshold_bytes, content_type)
            self.session = UploadSession(plan._replace(mode=MODE_SINGLE))
            self._transition(UploadState.VALIDATING_URL)
            self._accept_url(signed_url)
            self._transition(UploadState.UPLOADING)
            await self._transfer_whole(path, signed_url)
            return self._finish(signed_url.split("?", 1)[0])

        return await self._attempt(steps)

    def _require_idle(self) -> None:
        if self.state is not UploadState.IDLE:
            raise IllegalTransition(
                f"Cannot start an upload while {self.state.value}; call reset() first"
            )

    def _transition(self, new_state: UploadState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {new_state.value}")

        logger.debug(
            "Upload state %s -> %s",
            self.state.value,
            new_state.value,
            extra={"session_id": self.session.session_id if self.session else None},
        )
        self.state = new_state
        if self.session:
            self.session.state = new_state
        if new_state is UploadState.VALIDATING_URL:
            self.url_status = UrlStatus.CHECKING
        if self.on_state_change:
            self.on_state_change(new_state)

    def _accept_url(self, signed_url: str | None) -> None:
        self.url_status = inspect_url(signed_url, self.clock())
        if self.url_status is not UrlStatus.VALID:
            raise UrlStatusRejected(self.url_status)

    def _publish_progress(self) -> None:
        session = self.session
        percent = session.sent_percent
        if percent <= session.progress:
            return
        session.progress = percent
        if self.on_progress:
            self.on_progress(percent)

    def _track_in_flight(self, key: int, size: int) -> Callable[[float], None]:
        def update(percent: float) -> None:
            self.session.record_in_flight(key, size, percent)
            self._publish_progress()

        return update

    async def _attempt(self, steps: Callable[[], Awaitable[UploadResult]]) -> UploadResult:
        try:
            return await steps()
        except asyncio.CancelledError:
            await self._fail(UploadCancelled("Upload cancelled"))
            raise
        except Exception as e:
            await self._fail(e)
            raise

    async def _fail(self, exc: Exception) -> None:
        self.error = UploadFailure(
            kind=getattr(exc, "kind", UploadError.kind), message=str(exc)
        )
        session = self.session
        logger.error(
            "Upload failed (%s): %s",
            self.error.kind,
            self.error.message,
            extra={
                "session_id": session.session_id if session else None,
                "state": self.state.value,
            },
        )
        if self.state not in TERMINAL_STATES:
            self._transition(UploadState.ERROR)

        if (
            session is not None
            and session.plan.mode == MODE_SEGMENTED
            and session.session_id is not None
            and not session.aborted
        ):
            session.aborted = True
            await self.coordinator.abort_segmented(session.session_id)

    def _finish(self, durable_reference: str) -> UploadResult:
        session = self.session
        session.durable_reference = durable_reference
        session.in_flight_bytes.clear()
        session.completed_bytes = session.plan.total_size_bytes
        self._publish_progress()
        self._transition(UploadState.DONE)

        logger.info(
            "Upload of %s finished",
            session.plan.file_name,
            extra={"session_id": session.session_id, "durable_reference": durable_reference},
        )
        return UploadResult(
            session_id=session.session_id,
            durable_reference=durable_reference,
            plan=session.plan,
            parts=session.manifest,
        )

    async def _transfer_whole(self, path: str | os.PathLike, signed_url: str) -> None:
        plan = self.session.plan
        with open(path, "rb") as source:
            await self.single_transport.transfer(
                signed_url,
                source,
                plan.total_size_bytes,
                content_type=plan.content_type,
                on_progress=self._track_in_flight(0, plan.total_size_bytes),
            )

    async def _upload_single(self, path: str | os.PathLike) -> UploadResult:
        session = self.session
        plan = session.plan

        self._transition(UploadState.GENERATING_URL)
        grant = await self.coordinator.request_single_url(
            plan.file_name, plan.content_type, plan.total_size_bytes
        )
        session.session_id = grant.session_id

        self._transition(UploadState.VALIDATING_URL)
        self._accept_url(grant.signed_url)

        self._transition(UploadState.UPLOADING)
        await self._transfer_whole(path, grant.signed_url)

        self._transition(UploadState.CONFIRMING)
        durable_reference = await self.coordinator.confirm_single(grant.session_id)
        return self._finish(durable_reference)

    async def _upload_segmented(self, path: str | os.PathLike) -> UploadResult:
        session = self.session
        plan = session.plan

        self._transition(UploadState.INITIATING_SEGMENTED)
        grant = await self.coordinator.initiate_segmented(
            plan.file_name, plan.content_type, plan.total_size_bytes
        )
        session.session_id = grant.session_id

        segments = calculate_segments(
            plan.total_size_bytes, grant.segment_size_bytes, dict(grant.segment_urls)
        )
        granted = [index for index, _ in grant.segment_urls]
        if granted != [segment.index for segment in segments]:
            raise InvalidPlan(
                f"Coordinator granted segments {granted} but the file needs {len(segments)}"
            )
        session.segments = segments
        logger.info(
            "Uploading %s in %d segments",
            plan.file_name,
            len(segments),
            extra={"session_id": session.session_id},
        )

        self._transition(UploadState.VALIDATING_URL)
        for segment in segments:
            self._accept_url(segment.signed_url)

        self._transition(UploadState.UPLOADING_SEGMENTS)
        with open(path, "rb") as source:
            if self.config.max_concurrent_segments > 1:
                await self._transfer_segments_concurrently(source, segments)
            else:
                for segment in segments:
                    await self._transfer_segment(source, segment)

        self._transition(UploadState.COMPLETING_SEGMENTED)
        manifest = verify_manifest(session.completed_segments, len(segments))
        durable_reference = await self.coordinator.complete_segmented(
            session.session_id, manifest, planned_count=len(segments)
        )
        return self._finish(durable_reference)

    async def _transfer_segment(self, source: BinaryIO, segment: SegmentDescriptor) -> None:
        session = self.session
        # URLs can lapse while earlier segments are still being sent
        self._accept_url(segment.signed_url)

        source.seek(segment.start_byte)
        data = source.read(segment.size)
        if len(data) != segment.size:
            raise InvalidPlan(
                f"{session.plan.file_name} changed size while segment {segment.index} was read"
            )

        etag = await self.segment_transport.transfer(
            segment.signed_url,
            data,
            on_progress=self._track_in_flight(segment.index, segment.size),
        )

        session.record_completed(segment.index, segment.size, etag)
        self._publish_progress()
        logger.debug(
            "Segment %d/%d uploaded",
            segment.index,
            len(session.segments),
            extra={"session_id": session.session_id, "etag": etag},
        )

    async def _transfer_segments_concurrently(
        self, source: BinaryIO, segments: list[SegmentDescriptor]
    ) -> None:
        semaphore = asyncio.Semaphore(self.config.max_concurrent_segments)
        failed = asyncio.Event()

        async def worker(segment: SegmentDescriptor) -> None:
            async with semaphore:
                if failed.is_set():
                    return
                try:
                    await self._transfer_segment(source, segment)
                except Exception:
                    failed.set()
                    raise

        tasks = [asyncio.create_task(worker(segment)) for segment in segments]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
