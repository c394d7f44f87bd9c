"""
Tests for derive_client_identifier header precedence.
"""
from werkzeug.datastructures import Headers

from security.login_guard import UNKNOWN_CLIENT, derive_client_identifier


def test_edge_proxy_header_wins():
    headers = {
        "CF-Connecting-IP": "203.0.113.1",
        "X-Forwarded-For": "198.51.100.2",
        "X-Real-IP": "192.0.2.3",
    }
    assert derive_client_identifier(headers) == "203.0.113.1"


def test_forwarded_for_uses_left_most_entry():
    assert derive_client_identifier({"X-Forwarded-For": "1.2.3.4, 5.6.6.7"}) == "1.2.3.4"
    assert derive_client_identifier({"X-Forwarded-For": "  1.2.3.4  ,5.6.6.7,9.9.9.9"}) == "1.2.3.4"


def test_forwarded_for_beats_real_ip():
    headers = {"X-Forwarded-For": "198.51.100.2", "X-Real-IP": "192.0.2.3"}
    assert derive_client_identifier(headers) == "198.51.100.2"


def test_real_ip_fallback():
    assert derive_client_identifier({"X-Real-IP": "192.0.2.3"}) == "192.0.2.3"


def test_unknown_when_no_header():
    assert derive_client_identifier({}) == UNKNOWN_CLIENT == "unknown"
    assert derive_client_identifier({"User-Agent": "curl/8.0"}) == "unknown"


def test_blank_headers_are_skipped():
    headers = {"CF-Connecting-IP": "", "X-Forwarded-For": " , 10.0.0.1", "X-Real-IP": "192.0.2.3"}
    assert derive_client_identifier(headers) == "192.0.2.3"


def test_lookup_is_case_insensitive():
    assert derive_client_identifier({"x-forwarded-for": "1.2.3.4, 5.6.6.7"}) == "1.2.3.4"
    assert derive_client_identifier({"cf-connecting-ip": "203.0.113.1"}) == "203.0.113.1"


def test_werkzeug_headers():
    headers = Headers([("x-real-ip", "192.0.2.3"), ("X-FORWARDED-FOR", "198.51.100.2, 10.0.0.1")])
    assert derive_client_identifier(headers) == "198.51.100.2"


def test_custom_trusted_headers():
    headers = {"CF-Connecting-IP": "203.0.113.1", "X-Real-IP": "192.0.2.3"}
    assert derive_client_identifier(headers, ("X-Real-IP",)) == "192.0.2.3"
    assert derive_client_identifier(headers, ()) == "unknown"
