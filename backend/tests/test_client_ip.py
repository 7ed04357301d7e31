import pytest

from app.utils.client_ip import resolve_client_ip, normalize_ip, parse_allow_list, ip_allowed


class TestResolveClientIp:
    def test_client_ip_header_wins(self):
        headers = {
            "x-client-ip": "203.0.113.5",
            "x-forwarded-for": "198.51.100.1",
            "x-real-ip": "198.51.100.2",
        }
        assert resolve_client_ip(headers, "10.0.0.1") == "203.0.113.5"

    def test_first_forwarded_for_entry(self):
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.2, 10.0.0.3"}
        assert resolve_client_ip(headers, "10.0.0.1") == "203.0.113.7"

    def test_real_ip_before_connection(self):
        assert resolve_client_ip({"X-Real-IP": "203.0.113.8"}, "10.0.0.1") == "203.0.113.8"

    def test_connection_ip_last(self):
        assert resolve_client_ip({}, "10.0.0.1") == "10.0.0.1"

    def test_blank_headers_are_skipped(self):
        headers = {"x-client-ip": "  ", "x-forwarded-for": ""}
        assert resolve_client_ip(headers, "10.0.0.4") == "10.0.0.4"

    def test_unknown_outside_development(self):
        assert resolve_client_ip({}) == "unknown"

    def test_unknown_becomes_localhost_in_development(self):
        assert resolve_client_ip({}, development=True) == "127.0.0.1"

    @pytest.mark.parametrize("raw,expected", [
        ("::1", "127.0.0.1"),
        ("::ffff:127.0.0.1", "127.0.0.1"),
        ("::ffff:203.0.113.5", "203.0.113.5"),
        ("[::1]", "127.0.0.1"),
        ("2001:db8::1", "2001:db8::1"),
    ])
    def test_normalization(self, raw, expected):
        assert normalize_ip(raw) == expected
        assert resolve_client_ip({"x-real-ip": raw}) == expected


class TestAllowList:
    def test_parse(self):
        assert parse_allow_list(" 203.0.113.5, 203.0.113.9 ,") == ["203.0.113.5", "203.0.113.9"]
        assert parse_allow_list(None) == []

    def test_exact_match(self):
        allowed = parse_allow_list("203.0.113.5, 203.0.113.9")
        assert ip_allowed("203.0.113.5", allowed) is True
        assert ip_allowed("203.0.113.9", allowed) is True
        assert ip_allowed("203.0.113.6", allowed) is False

    def test_cidr_network(self):
        allowed = parse_allow_list("10.20.0.0/16")
        assert ip_allowed("10.20.30.40", allowed) is True
        assert ip_allowed("10.21.0.1", allowed) is False

    def test_unparseable_ip_only_matches_exactly(self):
        assert ip_allowed("unknown", ["10.0.0.0/8"]) is False
        assert ip_allowed("unknown", ["unknown"]) is True
