import argparse

from presigned_uploader.constants import (
    CMD_HEALTH,
    CMD_INSPECT,
    CMD_PRESIGN,
    CMD_PUT,
    CMD_UPLOAD,
    DEFAULT_BASE_URL,
    DEFAULT_PARALLEL_PARTS,
    DEFAULT_PRESIGN_EXPIRES,
    DEFAULT_USER_ID,
)
from presigned_uploader.structs import UploaderConfig
from presigned_uploader.utils import parse_size


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Upload files to object storage through pre-authorized URLs."
    )

    # Mode selection
    parser.add_argument(
        "mode",
        choices=[CMD_HEALTH, CMD_UPLOAD, CMD_PUT, CMD_INSPECT, CMD_PRESIGN],
        help="health: probe the coordinator; upload: coordinator-brokered upload; "
        "put: upload to a pre-issued URL; inspect: show URL expiry; "
        "presign: issue a pre-issued URL with AWS credentials",
    )

    # Coordinator arguments
    coordinator_group = parser.add_argument_group("Coordinator arguments")
    coordinator_group.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Coordinator base URL (default: {DEFAULT_BASE_URL})",
    )
    coordinator_group.add_argument(
        "--user-id", default=DEFAULT_USER_ID, help="User id sent to the coordinator"
    )

    # Upload arguments
    upload_group = parser.add_argument_group("Upload arguments")
    upload_group.add_argument("--file", help="Local file to upload (upload, put)")
    upload_group.add_argument(
        "--url", help="Pre-authorized URL (put, inspect)"
    )
    upload_group.add_argument(
        "--content-type", help="MIME type of the file; guessed from its name by default"
    )
    upload_group.add_argument(
        "--threshold",
        type=str,
        default="100MB",
        help="Files larger than this are uploaded in segments. Accepts suffixes KB, MB, GB.",
    )
    upload_group.add_argument(
        "--parallel-parts",
        type=int,
        default=DEFAULT_PARALLEL_PARTS,
        help=f"Segments to upload in parallel. Default: {DEFAULT_PARALLEL_PARTS}",
    )

    # Presign arguments
    presign_group = parser.add_argument_group("Presign arguments")
    presign_group.add_argument("--bucket", help="S3 bucket name")
    presign_group.add_argument("--key", help="S3 object key")
    presign_group.add_argument(
        "--expires-in",
        type=int,
        default=DEFAULT_PRESIGN_EXPIRES,
        help=f"URL validity in seconds (default: {DEFAULT_PRESIGN_EXPIRES})",
    )
    presign_group.add_argument(
        "--hostname", type=str, help="Custom S3 server hostname (default: AWS S3)"
    )
    presign_group.add_argument(
        "--protocol",
        type=str,
        default="https",
        choices=["http", "https"],
        help="Protocol to use with custom hostname (default: https)",
    )
    presign_group.add_argument(
        "--region",
        type=str,
        default="us-east-1",
        help="AWS region or custom region for S3-compatible server (default: us-east-1)",
    )
    presign_group.add_argument(
        "--use-path-style",
        action="store_true",
        help="Use path-style addressing instead of virtual-hosted style",
    )
    presign_group.add_argument(
        "--session-token", type=str, help="AWS session token for authentication"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug output")

    args = parser.parse_args(argv)

    # Validate mode-specific arguments
    if args.mode == CMD_UPLOAD and not args.file:
        parser.error("upload mode requires --file")
    elif args.mode == CMD_PUT and not (args.file and args.url):
        parser.error("put mode requires --file and --url")
    elif args.mode == CMD_INSPECT and not args.url:
        parser.error("inspect mode requires --url")
    elif args.mode == CMD_PRESIGN and not (args.bucket and args.key):
        parser.error("presign mode requires --bucket and --key")

    if args.parallel_parts < 1:
        parser.error("--parallel-parts must be at least 1")

    try:
        args.threshold_bytes = parse_size(args.threshold)
    except ValueError as e:
        parser.error(str(e))

    return args


def build_config(args) -> UploaderConfig:
    """Create the uploader configuration from parsed arguments."""
    return UploaderConfig(
        base_url=args.base_url,
        user_id=args.user_id,
        segment_threshold_bytes=args.threshold_bytes,
        max_concurrent_segments=args.parallel_parts,
    )
