from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit
from config import logger
from utils import AdmissionError


class OriginNotAllowedError(AdmissionError):
    def __init__(self, origin: str, allowed_origins: Tuple[str, ...]):
        super().__init__(
            403,
            "Origin not allowed.",
            details={"origin": origin, "allowed_origins": list(allowed_origins)},
        )


def normalize_origin(value: str) -> str:
    return value.strip().rstrip('/').lower()


def extract_origin(headers: Dict[str, str]) -> Optional[str]:
    """
    Pick the caller's origin from the Origin header, falling back to Referer.

    A full URL (as Referer usually is) is reduced to scheme and host so the
    path and query never take part in matching. A value urlsplit cannot parse
    is returned unchanged and left to the allow-list match.
    """
    candidate = headers.get('origin') or headers.get('referer')
    if not candidate:
        return None

    if '://' in candidate:
        try:
            parts = urlsplit(candidate)
        except ValueError:
            logger.warning(f"Could not parse origin {candidate!r}")
            return candidate
        if parts.scheme and parts.netloc:
            candidate = f"{parts.scheme}://{parts.netloc}"
    return candidate


def _strip_scheme(origin: str) -> str:
    return origin.split('://', 1)[-1]


def is_origin_allowed(origin: str, allowed_origins: Iterable[str]) -> bool:
    """
    Loose allow-list match, kept as deployed clients rely on it.

    Admits an exact match, a candidate that starts with an allowed entry, or a
    candidate containing an allowed entry's host. The prefix and substring
    rules also admit look-alike hosts (e.g. "https://app.example.com.evil.io"
    matches "https://app.example.com"), which is a known weakness.
    """
    candidate = normalize_origin(origin)
    for entry in allowed_origins:
        allowed = normalize_origin(entry)
        if not allowed:
            continue
        if candidate == allowed or candidate.startswith(allowed):
            return True
        if _strip_scheme(allowed) in candidate:
            return True
    return False


def check_origin(origin: Optional[str], allowed_origins: Iterable[str]) -> None:
    """
    Raise OriginNotAllowedError unless the origin is admissible.

    Requests with no Origin/Referer, and deployments with an empty allow-list,
    pass without a check.
    """
    allowed = tuple(normalize_origin(entry) for entry in allowed_origins)
    if not origin or not allowed:
        return

    if not is_origin_allowed(origin, allowed):
        logger.warning(f"Rejected request from origin {origin}")
        raise OriginNotAllowedError(origin, allowed)
