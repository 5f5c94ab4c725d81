"""Temporal validity of pre-authorized URLs.

Storage backends sign in UTC, so the compact signing date embedded in a URL
is always parsed as a UTC instant.
"""

import enum
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import NamedTuple
from urllib.parse import parse_qs, urlsplit

from presigned_uploader.constants import SIGNATURE_PARAMS, SIGNED_DATE_FORMAT

logger = logging.getLogger(__name__)


class UrlStatus(enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"
    MISSING = "missing"
    CHECKING = "checking"


class UrlExpiryInfo(NamedTuple):
    status: UrlStatus
    signed_date: datetime | None = None
    expiry_date: datetime | None = None
    expires_in_seconds: int | None = None
    seconds_remaining: int = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_signed_date(value: str) -> datetime:
    """
    Parse a compact signing timestamp (YYYYMMDDTHHMMSSZ) as UTC.

    Raises:
        ValueError: If the value does not match the format
    """
    if not re.fullmatch(r"\d{8}T\d{6}Z", value):
        raise ValueError(f"Malformed signing date: {value!r}")
    return datetime.strptime(value, SIGNED_DATE_FORMAT).replace(tzinfo=timezone.utc)


def _signature_window(url: str) -> tuple[datetime, int]:
    query = parse_qs(urlsplit(url).query)

    for algorithm_key, date_key, expires_key in SIGNATURE_PARAMS:
        if date_key in query or expires_key in query:
            break
    else:
        raise ValueError("URL carries no signing parameters")

    algorithm = query.get(algorithm_key, [""])[0]
    signed = query.get(date_key, [""])[0]
    expires = query.get(expires_key, [""])[0]
    if not (algorithm and signed and expires):
        raise ValueError(
            f"URL is missing one of {algorithm_key}, {date_key}, {expires_key}"
        )

    expires_in = int(expires)
    if expires_in < 0:
        raise ValueError(f"Negative validity window: {expires_in}")

    return parse_signed_date(signed), expires_in


def get_url_expiry_info(url: str | None, now: datetime | None = None) -> UrlExpiryInfo:
    """
    Extract expiry information from a signed URL.

    Args:
        url: The signed URL
        now: Reference instant, defaults to the current UTC time

    Returns:
        UrlExpiryInfo with signing date, expiry date and whole seconds left
    """
    if not url:
        return UrlExpiryInfo(status=UrlStatus.MISSING)

    try:
        signed_date, expires_in = _signature_window(url)
        expiry_date = signed_date + timedelta(seconds=expires_in)
    except (ValueError, OverflowError) as e:
        logger.debug("Cannot read signed URL expiry: %s", e)
        return UrlExpiryInfo(status=UrlStatus.INVALID)

    now = _as_utc(now or utc_now())
    is_expired = now > expiry_date

    return UrlExpiryInfo(
        status=UrlStatus.EXPIRED if is_expired else UrlStatus.VALID,
        signed_date=signed_date,
        expiry_date=expiry_date,
        expires_in_seconds=expires_in,
        seconds_remaining=0 if is_expired else int((expiry_date - now).total_seconds()),
    )


def inspect_url(url: str | None, now: datetime | None = None) -> UrlStatus:
    """Classify a signed URL at ``now``. Never raises."""
    return get_url_expiry_info(url, now).status
