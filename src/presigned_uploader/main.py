#!/usr/bin/env python3
"""
Presigned Uploader

Moves local files into object storage through short-lived pre-authorized
URLs, either issued by an upload coordinator or handed over directly.
"""

from presigned_uploader.coordinator import CoordinatorClient
from presigned_uploader.expiry import get_url_expiry_info
from presigned_uploader.orchestrator import UploadOrchestrator
from presigned_uploader.planning import build_upload_plan
from presigned_uploader.structs import HealthStatus, UploaderConfig, UploadResult
from presigned_uploader.utils import (
    ProgressDisplay,
    format_size,
    generate_upload_url,
    get_s3_client,
    presign_command,
)


async def run_health_check(config: UploaderConfig) -> HealthStatus:
    """
    Probe the coordinator once.

    Args:
        config: Uploader configuration

    Returns:
        HealthStatus of the coordinator
    """
    async with CoordinatorClient(config) as coordinator:
        health = await coordinator.check_health()

    print(f"Coordinator {config.base_url}: {health.status}")
    return health


async def run_upload(config: UploaderConfig, path, content_type=None) -> UploadResult:
    """
    Upload a file through coordinator-issued URLs.

    Args:
        config: Uploader configuration
        path: Local file to upload
        content_type: Optional MIME type

    Returns:
        UploadResult with the durable reference
    """
    plan = build_upload_plan(path, config.segment_threshold_bytes, content_type)
    print(
        f"Preparing {plan.mode} upload of {plan.file_name} "
        f"({format_size(plan.total_size_bytes)}, {plan.content_type})"
    )

    async with CoordinatorClient(config) as coordinator:
        async with UploadOrchestrator(
            config,
            coordinator,
            on_progress=ProgressDisplay(plan.total_size_bytes),
        ) as orchestrator:
            result = await orchestrator.upload(path, content_type)

    print(f"\nUpload complete: {result.durable_reference}")
    if result.parts:
        print(f"Completed {len(result.parts)} segments")
    return result


async def run_put(config: UploaderConfig, path, signed_url, content_type=None) -> UploadResult:
    """Upload a file to a pre-issued signed URL."""
    plan = build_upload_plan(path, config.segment_threshold_bytes, content_type)
    print_expiry(signed_url)

    async with UploadOrchestrator(
        config, on_progress=ProgressDisplay(plan.total_size_bytes)
    ) as orchestrator:
        result = await orchestrator.upload_to_url(path, signed_url, content_type)

    print(f"\nUpload complete: {result.durable_reference}")
    return result


def print_expiry(signed_url):
    """Print expiry information of a signed URL."""
    info = get_url_expiry_info(signed_url)
    print(f"URL status: {info.status.value}")
    if info.signed_date is not None:
        print(f"Signed at: {info.signed_date.isoformat()}")
        print(f"Expires at: {info.expiry_date.isoformat()}")
        print(f"Seconds remaining: {info.seconds_remaining}")
    return info


def run_presign(boto_session, args) -> str:
    """
    Issue a pre-authorized PUT URL for the pre-issued flavor.

    Args:
        boto_session: boto3 session with the collected credentials
        args: Command line arguments

    Returns:
        The signed URL
    """
    s3_client = get_s3_client(
        boto_session, args.hostname, args.protocol, args.region, args.use_path_style
    )
    url = generate_upload_url(
        s3_client, args.bucket, args.key, args.content_type, args.expires_in
    )

    print(url)
    print_expiry(url)
    print("Regenerate with:")
    print(presign_command(args.bucket, args.key, args.expires_in, args.region))
    return url
