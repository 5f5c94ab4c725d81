"""
Pytest configuration for presigned uploader tests.

A single ``FakeBackend`` plays both the upload coordinator and the storage
backend behind an ``httpx.MockTransport``. Signed URLs are real SigV4 URLs
produced offline by boto3 with dummy credentials.
"""

import asyncio
import json
import math
from urllib.parse import parse_qs

import boto3
import httpx
import pytest
import pytest_asyncio
from botocore.config import Config

from presigned_uploader.coordinator import CoordinatorClient
from presigned_uploader.structs import UploaderConfig

COORDINATOR_URL = "http://coordinator.test/api/upload"
STORAGE_HOST = "storage.test"
BUCKET = "uploads"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        endpoint_url=f"http://{STORAGE_HOST}",
        aws_access_key_id="AKIDEXAMPLE",
        aws_secret_access_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


class FakeBackend:
    """In-memory coordinator plus storage backend."""

    def __init__(self, s3_client, segment_size=40):
        self.s3_client = s3_client
        self.segment_size = segment_size
        self.requests = []
        self.part_attempts = []
        self.part_bodies = {}
        self.part_headers = {}
        self.single_uploads = []
        self.completed_manifests = []
        self.aborted = []
        self.part_status = {}
        self.parts_without_etag = set()
        self.part_delays = {}
        self.hang_parts = set()
        self.part_started = asyncio.Event()
        self.storage_status = 200
        self.health_response = (200, {"reachable": True, "storageConfigured": True})
        self.abort_status = 200
        self.coordinator_failures = {}

    def presign_put(self, key, expires_in=3600):
        return self.s3_client.generate_presigned_url(
            "put_object", Params={"Bucket": BUCKET, "Key": key}, ExpiresIn=expires_in
        )

    def presign_part(self, key, upload_id, part_number, expires_in=3600):
        return self.s3_client.generate_presigned_url(
            "upload_part",
            Params={
                "Bucket": BUCKET,
                "Key": key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=expires_in,
        )

    def coordinator_calls(self, path):
        return [body for method, p, body in self.requests if p == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STORAGE_HOST:
            return await self._storage(request)
        return self._coordinator(request)

    def _coordinator(self, request):
        path = request.url.path.removeprefix("/api/upload")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        if path in self.coordinator_failures:
            status, message = self.coordinator_failures[path]
            return httpx.Response(status, json={"error": {"message": message}})

        if path == "/health":
            status, payload = self.health_response
            return httpx.Response(status, json=payload)
        if path == "/presigned-url":
            return httpx.Response(
                200,
                json={"sessionId": "single-1", "signedUrl": self.presign_put(body["fileName"])},
            )
        if path == "/confirm":
            return httpx.Response(
                200, json={"durableReference": f"s3://{BUCKET}/{body['sessionId']}"}
            )
        if path == "/multipart/initiate":
            count = math.ceil(body["fileSize"] / self.segment_size)
            urls = [
                {"index": n, "signedUrl": self.presign_part(body["fileName"], "mp-1", n)}
                for n in range(1, count + 1)
            ]
            return httpx.Response(
                200,
                json={
                    "sessionId": "mp-1",
                    "segmentUrls": list(reversed(urls)),
                    "segmentSizeBytes": self.segment_size,
                },
            )
        if path == "/multipart/complete":
            self.completed_manifests.append(body["parts"])
            return httpx.Response(200, json={"durableReference": f"s3://{BUCKET}/big.bin"})
        if path == "/multipart/abort":
            self.aborted.append(body["sessionId"])
            if self.abort_status != 200:
                return httpx.Response(self.abort_status, json={"error": {"message": "boom"}})
            return httpx.Response(200, json={"aborted": True})

        return httpx.Response(404, json={"error": {"message": "not found"}})

    async def _storage(self, request):
        query = parse_qs(request.url.query.decode())
        if "partNumber" not in query:
            self.single_uploads.append((request.headers.get("Content-Type"), request.content))
            if self.storage_status != 200:
                return httpx.Response(self.storage_status)
            return httpx.Response(200, headers={"ETag": '"etag-single"'})

        part_number = int(query["partNumber"][0])
        self.part_attempts.append(part_number)
        self.part_headers[part_number] = request.headers
        self.part_started.set()

        if part_number in self.hang_parts:
            await asyncio.Event().wait()
        if part_number in self.part_delays:
            await asyncio.sleep(self.part_delays[part_number])
        if part_number in self.part_status:
            return httpx.Response(self.part_status[part_number])
        if part_number in self.parts_without_etag:
            return httpx.Response(200)

        self.part_bodies[part_number] = request.content
        return httpx.Response(200, headers={"ETag": f'"T{part_number}"'})


@pytest.fixture
def backend(s3_client):
    return FakeBackend(s3_client)


@pytest_asyncio.fixture
async def http_client(backend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
        yield client


@pytest.fixture
def config():
    return UploaderConfig(
        base_url=COORDINATOR_URL,
        user_id="tester",
        segment_threshold_bytes=50,
        chunk_size=10,
    )


@pytest.fixture
def coordinator(config, http_client):
    return CoordinatorClient(config, http_client)


@pytest.fixture
def make_file(tmp_path):
    def _make(size, name="big.bin"):
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return path

    return _make
