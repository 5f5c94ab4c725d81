import re
import time

import boto3
from botocore.config import Config

from presigned_uploader.constants import DEFAULT_PRESIGN_EXPIRES


class CredentialManager:
    """Handle AWS credentials collection for issuing development URLs."""

    def __init__(self):
        self.access_key = None
        self.secret_key = None
        self.session_token = None

    def collect_credentials(self, session_token=None):
        """
        Prompt user for AWS credentials.

        Returns:
            self for method chaining
        """
        print("Enter AWS credentials:")
        self.access_key = input("AWS Access Key ID: ").strip()
        self.secret_key = input("AWS Secret Access Key: ").strip()
        self.session_token = session_token

        return self

    def get_boto_session(self):
        """
        Create and return a boto3 session with the collected credentials.

        Returns:
            boto3.Session: Configured boto3 session
        """
        session_kwargs = {
            "aws_access_key_id": self.access_key,
            "aws_secret_access_key": self.secret_key,
        }
        if self.session_token:
            session_kwargs["aws_session_token"] = self.session_token

        return boto3.Session(**session_kwargs)


def get_s3_client(
    boto_session,
    hostname=None,
    protocol="https",
    region="us-east-1",
    use_path_style=False,
):
    """
    Create and return a boto3 S3 client that signs with SigV4.

    Args:
        boto_session: boto3.Session object
        hostname: Optional custom S3 server hostname
        protocol: Protocol to use (http or https)
        region: AWS region or custom region for S3-compatible server
        use_path_style: Whether to use path-style addressing

    Returns:
        boto3 S3 client
    """
    endpoint_url = f"{protocol}://{hostname}" if hostname else None

    return boto_session.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=region,
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if use_path_style else "auto"},
        ),
    )


def generate_upload_url(
    s3_client,
    bucket: str,
    key: str,
    content_type: str | None = None,
    expires_in: int = DEFAULT_PRESIGN_EXPIRES,
) -> str:
    """
    Generate a pre-signed URL for a single PUT upload.

    Args:
        s3_client: boto3 S3 client
        bucket: S3 bucket name
        key: S3 object key
        content_type: Content-Type the uploader must send, if any
        expires_in: URL expiration time in seconds

    Returns:
        The pre-signed URL
    """
    params = {"Bucket": bucket, "Key": key}
    if content_type:
        params["ContentType"] = content_type

    return s3_client.generate_presigned_url(
        "put_object", Params=params, ExpiresIn=expires_in
    )


def presign_command(
    bucket: str, key: str, expires_in: int = DEFAULT_PRESIGN_EXPIRES, region: str = "us-east-1"
) -> str:
    """AWS CLI command that issues a fresh pre-signed URL for the object."""
    return f"aws s3 presign s3://{bucket}/{key} --expires-in {expires_in} --region {region}"


class ProgressDisplay:
    """Print upload progress and speed on a single console line."""

    def __init__(self, total_bytes: int, update_interval: float = 0.5):
        """
        Initialize the progress display.

        Args:
            total_bytes: Size of the upload in bytes
            update_interval: Minimum seconds between redraws
        """
        self.total_bytes = total_bytes
        self.update_interval = update_interval
        self.start_time = time.time()
        self.last_update = 0.0
        self.last_line_length = 0  # Track the length of the last printed line

    def __call__(self, percent: float):
        current_time = time.time()
        if percent < 100 and current_time - self.last_update < self.update_interval:
            return
        self.last_update = current_time

        transferred = int(self.total_bytes * percent / 100)
        elapsed = current_time - self.start_time
        speed = transferred / elapsed if elapsed > 0 else 0

        progress_str = (
            f"Progress: {percent:5.1f}% | Transferred: {format_size(transferred)}"
            f" | Speed: {format_speed(speed)}"
        )

        # Pad with spaces to overwrite any remaining characters from previous line
        if len(progress_str) < self.last_line_length:
            progress_str += " " * (self.last_line_length - len(progress_str))
        self.last_line_length = len(progress_str)

        print(f"\r{progress_str}", end="")


def format_size(size: int) -> str:
    """
    Format size in bytes to human-readable format.

    Args:
        size: Size in bytes

    Returns:
        Formatted size string
    """
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    return f"{size:.2f} {units[unit_index]}"


def format_speed(speed: float) -> str:
    """
    Format speed in bytes/second to human-readable format.

    Args:
        speed: Speed in bytes per second

    Returns:
        Formatted speed string
    """
    units = ["B/s", "KB/s", "MB/s", "GB/s"]
    unit_index = 0

    while speed >= 1024 and unit_index < len(units) - 1:
        speed /= 1024
        unit_index += 1

    return f"{speed:.2f} {units[unit_index]}"


def parse_size(size_str: str) -> int:
    """
    Parse a size string with optional suffix (KB, MB, GB) to bytes.

    Args:
        size_str: Size string (e.g., "5MB", "10KB", "1GB")

    Returns:
        Size in bytes
    """
    match = re.match(r"^(\d+)([KMG]B)?$", size_str, re.IGNORECASE)
    if not match:
        raise ValueError(
            f"Invalid size format: {size_str}. Expected format: NUMBER[KB|MB|GB]"
        )

    value, unit = match.groups()
    value = int(value)

    if unit:
        value *= {"KB": 1024, "MB": 1024**2, "GB": 1024**3}[unit.upper()]

    return value
