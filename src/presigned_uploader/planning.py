import logging
import mimetypes
import os
from collections.abc import Iterable, Mapping

from presigned_uploader.constants import (
    DEFAULT_CONTENT_TYPE,
    MODE_SEGMENTED,
    MODE_SINGLE,
)
from presigned_uploader.exceptions import IncompleteManifest, InvalidPlan
from presigned_uploader.structs import CompletedSegment, SegmentDescriptor, UploadPlan

logger = logging.getLogger(__name__)


def calculate_segments(
    total_size_bytes: int,
    segment_size_bytes: int,
    urls: Mapping[int, str] | None = None,
) -> list[SegmentDescriptor]:
    """
    Calculate segment ranges for a segmented upload.

    Args:
        total_size_bytes: Total size of the file in bytes
        segment_size_bytes: Size of each segment in bytes
        urls: Optional signed URLs keyed by 1-based segment index

    Returns:
        List of SegmentDescriptor covering [0, total_size_bytes) exactly once

    Raises:
        InvalidPlan: If either size is not positive
    """
    if not isinstance(segment_size_bytes, int) or segment_size_bytes <= 0:
        raise InvalidPlan(f"Segment size must be a positive integer, got {segment_size_bytes!r}")
    if total_size_bytes <= 0:
        raise InvalidPlan(f"Cannot segment an upload of {total_size_bytes} bytes")

    urls = urls or {}
    segments = []
    for i, start in enumerate(range(0, total_size_bytes, segment_size_bytes)):
        index = i + 1  # coordinator part numbers are 1-based
        end = min(start + segment_size_bytes, total_size_bytes)
        segments.append(
            SegmentDescriptor(
                index=index, start_byte=start, end_byte=end, signed_url=urls.get(index)
            )
        )

    return segments


def select_mode(total_size_bytes: int, threshold_bytes: int) -> str:
    """Files strictly larger than the threshold are uploaded in segments."""
    return MODE_SEGMENTED if total_size_bytes > threshold_bytes else MODE_SINGLE


def build_upload_plan(
    path: str | os.PathLike, threshold_bytes: int, content_type: str | None = None
) -> UploadPlan:
    """
    Create the upload plan for a local file.

    Args:
        path: Path of the file to upload
        threshold_bytes: Size above which the upload is segmented
        content_type: MIME type; guessed from the file name when omitted

    Returns:
        UploadPlan for this attempt
    """
    total_size_bytes = os.stat(path).st_size
    if total_size_bytes == 0:
        raise InvalidPlan(f"{os.fspath(path)} is empty")

    file_name = os.path.basename(path)
    if content_type is None:
        content_type = mimetypes.guess_type(file_name)[0] or DEFAULT_CONTENT_TYPE

    plan = UploadPlan(
        file_name=file_name,
        content_type=content_type,
        total_size_bytes=total_size_bytes,
        mode=select_mode(total_size_bytes, threshold_bytes),
    )
    logger.debug(
        "Planned %s upload of %s",
        plan.mode,
        file_name,
        extra={"total_size_bytes": total_size_bytes, "threshold_bytes": threshold_bytes},
    )
    return plan


def verify_manifest(
    completed: Iterable[CompletedSegment], planned_count: int
) -> list[CompletedSegment]:
    """
    Check that completed segments cover indices 1..planned_count exactly once.

    Returns:
        The manifest ordered by index

    Raises:
        IncompleteManifest: On missing, duplicate or out-of-range indices
    """
    manifest = sorted(completed, key=lambda part: part.index)
    indices = [part.index for part in manifest]
    expected = list(range(1, planned_count + 1))

    if indices != expected:
        missing = sorted(set(expected) - set(indices))
        duplicates = sorted({i for i in indices if indices.count(i) > 1})
        raise IncompleteManifest(
            f"Manifest has {len(indices)} of {planned_count} segments "
            f"(missing: {missing}, duplicates: {duplicates})"
        )

    return manifest
