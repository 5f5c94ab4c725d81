"""Error taxonomy for presigned uploads.

Every error carries a machine-readable ``kind`` so callers can map failures to
guidance without parsing messages.
"""


class UploadError(Exception):
    """Base exception for upload failures."""

    kind = "upload-error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPlan(UploadError):
    """Segmentation input is unusable (empty file, non-positive segment size)."""

    kind = "invalid-plan"


class UrlStatusRejected(UploadError):
    """A signed URL was missing, invalid or expired when it was checked."""

    kind = "url-rejected"

    def __init__(self, status, message: str | None = None):
        self.status = status
        super().__init__(message or f"Signed URL rejected: {status.value}")


class CoordinatorError(UploadError):
    """A handshake call to the coordinator failed."""

    kind = "coordinator-error"

    def __init__(self, status: int | None, message: str):
        self.status = status
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500


class NetworkError(UploadError):
    """A transfer got no response from the storage backend."""

    kind = "network-error"
    retryable = True


class ForbiddenTransfer(UploadError):
    """The storage backend answered 403; the signed URL must be regenerated."""

    kind = "forbidden-transfer"
    status = 403

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Upload rejected with 403 Forbidden. The pre-authorized URL has "
            "likely expired or been invalidated; generate a new one and retry."
        )


class TransferFailed(UploadError):
    """The storage backend answered with a non-2xx status other than 403."""

    kind = "transfer-failed"

    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"Upload failed with status {status}")

    @property
    def retryable(self) -> bool:
        return self.status >= 500


class MissingConfirmationToken(UploadError):
    """A segment transfer succeeded but carried no ETag."""

    kind = "missing-confirmation-token"


class IncompleteManifest(UploadError):
    """The completion manifest does not cover every planned segment exactly once."""

    kind = "incomplete-manifest"


class UploadCancelled(UploadError):
    kind = "cancelled"


class IllegalTransition(RuntimeError):
    """The orchestrator was asked to move between states it does not connect."""
