import pytest

from config import DEFAULT_ALLOWED_ORIGINS, parse_allowed_origins
from origin_guard import (
    OriginNotAllowedError,
    check_origin,
    extract_origin,
    is_origin_allowed,
    normalize_origin,
)

ALLOWED = ("https://app.example.com", "http://localhost:3000/")


def test_normalize_origin_strips_trailing_slash_and_lowercases():
    assert normalize_origin("HTTPS://App.Example.com/") == "https://app.example.com"


def test_extract_origin_prefers_origin_header():
    headers = {"origin": "https://app.example.com", "referer": "https://other.example.com/page"}
    assert extract_origin(headers) == "https://app.example.com"


def test_extract_origin_reduces_referer_to_scheme_and_host():
    headers = {"referer": "https://app.example.com:8443/voice/chat?x=1"}
    assert extract_origin(headers) == "https://app.example.com:8443"


def test_extract_origin_missing_headers():
    assert extract_origin({}) is None


@pytest.mark.parametrize("origin", ["https://app.example.com", "HTTPS://APP.EXAMPLE.COM/", "http://localhost:3000"])
def test_allow_listed_origins_are_admitted(origin):
    assert is_origin_allowed(origin, ALLOWED)
    check_origin(origin, ALLOWED)


def test_prefix_and_host_substring_matches_are_admitted():
    # Loose matching admits look-alike hosts as well
    assert is_origin_allowed("https://app.example.com.evil.io", ALLOWED)
    assert is_origin_allowed("http://app.example.com", ALLOWED)
    assert is_origin_allowed("http://localhost:3000", ["https://localhost:3000"])


def test_unrelated_origin_is_rejected_with_403():
    with pytest.raises(OriginNotAllowedError) as excinfo:
        check_origin("https://attacker.test", ALLOWED)

    error = excinfo.value
    assert error.status_code == 403
    body = error.to_body()
    assert body["origin"] == "https://attacker.test"
    assert body["allowed_origins"] == ["https://app.example.com", "http://localhost:3000"]


def test_missing_origin_fails_open():
    check_origin(None, ALLOWED)


def test_empty_allow_list_fails_open():
    check_origin("https://attacker.test", ())


def test_parse_allowed_origins_defaults_and_overrides():
    assert parse_allowed_origins(None) == DEFAULT_ALLOWED_ORIGINS
    assert len(DEFAULT_ALLOWED_ORIGINS) == 3
    assert parse_allowed_origins(" https://a.test/ , ,https://b.test") == ("https://a.test/", "https://b.test")
    assert parse_allowed_origins("") == ()


def test_unparseable_referer_is_kept_verbatim():
    assert extract_origin({"referer": "http://[::1/x"}) == "http://[::1/x"


def test_unparseable_referer_is_rejected_by_non_empty_allow_list():
    with pytest.raises(OriginNotAllowedError):
        check_origin(extract_origin({"referer": "http://[::1/x"}), ALLOWED)
