# Constants
DEFAULT_BASE_URL = "http://localhost:3001/api/upload"
DEFAULT_USER_ID = "anonymous"
DEFAULT_SEGMENT_THRESHOLD = 100 * 1024 * 1024  # 100 MB
DEFAULT_PARALLEL_PARTS = 1
DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KB
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_PRESIGN_EXPIRES = 7 * 24 * 3600  # 7 days, the SigV4 maximum
DEFAULT_DOWNLOAD_EXPIRES = 3600

# Upload modes
MODE_SINGLE = "single"
MODE_SEGMENTED = "segmented"

# Command line modes
CMD_HEALTH = "health"
CMD_UPLOAD = "upload"
CMD_PUT = "put"
CMD_INSPECT = "inspect"
CMD_PRESIGN = "presign"

# Signed URL query parameters, by signing scheme
SIGNATURE_PARAMS = (
    ("X-Amz-Algorithm", "X-Amz-Date", "X-Amz-Expires"),
    ("X-Goog-Algorithm", "X-Goog-Date", "X-Goog-Expires"),
)
SIGNED_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# Coordinator health
HEALTH_ONLINE = "online"
HEALTH_NOT_CONFIGURED = "s3-not-configured"
HEALTH_OFFLINE = "offline"
