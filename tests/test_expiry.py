"""
Tests for signed URL expiry inspection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from presigned_uploader.expiry import (
    UrlStatus,
    get_url_expiry_info,
    inspect_url,
    parse_signed_date,
)

BASE = "https://bucket.s3.ap-south-1.amazonaws.com/videos/clip.mp4"
SIGNED = (
    f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256"
    "&X-Amz-Credential=AKIDEXAMPLE%2F20240101%2Fap-south-1%2Fs3%2Faws4_request"
    "&X-Amz-Date=20240101T000000Z&X-Amz-Expires=604800"
    "&X-Amz-SignedHeaders=host&X-Amz-Signature=abc123"
)
EXPIRY = datetime(2024, 1, 8, tzinfo=timezone.utc)


def test_seven_day_url_expires_one_second_after_window():
    info = get_url_expiry_info(SIGNED, datetime(2024, 1, 8, 0, 0, 1, tzinfo=timezone.utc))

    assert info.status is UrlStatus.EXPIRED
    assert info.expiry_date == EXPIRY
    assert info.seconds_remaining == 0


def test_seven_day_url_valid_one_second_before_window():
    info = get_url_expiry_info(SIGNED, datetime(2024, 1, 7, 23, 59, 59, tzinfo=timezone.utc))

    assert info.status is UrlStatus.VALID
    assert info.signed_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert info.expires_in_seconds == 604800
    assert info.seconds_remaining == 1


@pytest.mark.parametrize(
    "offset, expected",
    [
        (timedelta(seconds=-1), UrlStatus.VALID),
        (timedelta(0), UrlStatus.VALID),
        (timedelta(seconds=1), UrlStatus.EXPIRED),
    ],
)
def test_expiry_boundary_is_inclusive(offset, expected):
    assert inspect_url(SIGNED, EXPIRY + offset) is expected


def test_signing_date_is_read_as_utc():
    assert parse_signed_date("20240101T000000Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_now_in_another_timezone_is_compared_as_instant():
    # 05:30 in India on Jan 8th is exactly the expiry instant
    ist = timezone(timedelta(hours=5, minutes=30))
    assert inspect_url(SIGNED, datetime(2024, 1, 8, 5, 30, tzinfo=ist)) is UrlStatus.VALID
    assert inspect_url(SIGNED, datetime(2024, 1, 8, 5, 30, 1, tzinfo=ist)) is UrlStatus.EXPIRED


def test_naive_now_is_treated_as_utc():
    assert inspect_url(SIGNED, datetime(2024, 1, 8, 0, 0, 1)) is UrlStatus.EXPIRED


@pytest.mark.parametrize("url", [None, ""])
def test_missing_url(url):
    assert inspect_url(url) is UrlStatus.MISSING


@pytest.mark.parametrize(
    "url",
    [
        BASE,
        f"{BASE}?X-Amz-Date=20240101T000000Z&X-Amz-Expires=604800",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Expires=604800",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Date=20240101T000000Z",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Date=2024-01-01&X-Amz-Expires=60",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Date=2024011T00000Z&X-Amz-Expires=60",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Date=20240101T000000Z&X-Amz-Expires=soon",
        f"{BASE}?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Date=20240101T000000Z&X-Amz-Expires=-5",
        "not a url at all",
    ],
)
def test_unparseable_urls_are_invalid(url):
    info = get_url_expiry_info(url, EXPIRY)

    assert info.status is UrlStatus.INVALID
    assert info.expiry_date is None
    assert info.seconds_remaining == 0


def test_gcs_v4_parameters_are_understood():
    url = (
        "https://storage.googleapis.com/bucket/object?X-Goog-Algorithm=GOOG4-RSA-SHA256"
        "&X-Goog-Date=20240101T000000Z&X-Goog-Expires=900&X-Goog-Signature=ff"
    )

    assert inspect_url(url, datetime(2024, 1, 1, 0, 15, tzinfo=timezone.utc)) is UrlStatus.VALID
    assert inspect_url(url, datetime(2024, 1, 1, 0, 15, 1, tzinfo=timezone.utc)) is UrlStatus.EXPIRED


def test_expiry_info_is_idempotent():
    now = datetime(2024, 1, 3, 12, tzinfo=timezone.utc)

    assert get_url_expiry_info(SIGNED, now) == get_url_expiry_info(SIGNED, now)


def test_freshly_presigned_url_is_valid(backend):
    url = backend.presign_put("clip.mp4", expires_in=600)
    info = get_url_expiry_info(url)

    assert info.status is UrlStatus.VALID
    assert info.expires_in_seconds == 600
    assert 0 < info.seconds_remaining <= 600
