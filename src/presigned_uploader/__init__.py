"""Upload files to object storage through pre-authorized URLs."""

import asyncio
import sys

from presigned_uploader.coordinator import CoordinatorClient
from presigned_uploader.expiry import UrlStatus, get_url_expiry_info, inspect_url
from presigned_uploader.orchestrator import UploadOrchestrator, UploadState
from presigned_uploader.structs import UploaderConfig


def main():
    from presigned_uploader.cli import cli

    try:
        asyncio.run(cli())
    except KeyboardInterrupt:
        print("\nUpload interrupted by user.")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)


__all__ = [
    "CoordinatorClient",
    "UploadOrchestrator",
    "UploadState",
    "UploaderConfig",
    "UrlStatus",
    "get_url_expiry_info",
    "inspect_url",
    "main",
]
