import logging
import sys

from presigned_uploader.constants import (
    CMD_HEALTH,
    CMD_INSPECT,
    CMD_PRESIGN,
    CMD_PUT,
    CMD_UPLOAD,
    HEALTH_ONLINE,
)
from presigned_uploader.exceptions import UploadError
from presigned_uploader.main import (
    print_expiry,
    run_health_check,
    run_presign,
    run_put,
    run_upload,
)
from presigned_uploader.parsing import build_config, parse_arguments
from presigned_uploader.utils import CredentialManager


async def cli(argv=None):
    """Main entry point for the uploader."""
    # Parse command line arguments
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = build_config(args)

    try:
        if args.mode == CMD_HEALTH:
            health = await run_health_check(config)
            if health.status != HEALTH_ONLINE:
                sys.exit(2)
        elif args.mode == CMD_UPLOAD:
            await run_upload(config, args.file, args.content_type)
        elif args.mode == CMD_PUT:
            await run_put(config, args.file, args.url, args.content_type)
        elif args.mode == CMD_INSPECT:
            print_expiry(args.url)
        elif args.mode == CMD_PRESIGN:
            # Collect AWS credentials
            credentials = CredentialManager().collect_credentials(args.session_token)
            run_presign(credentials.get_boto_session(), args)
    except UploadError as e:
        print(f"\nUpload failed [{e.kind}]: {e.message}")
        sys.exit(1)
