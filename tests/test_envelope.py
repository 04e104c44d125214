"""Tests for the response envelope parser.

Uses hand-built SSOResponse objects and dicts; no mock server needed.
"""

import pytest
from sufe_sso.envelope import (
    SSOEnvelope,
    assert_sso_success,
    error_detail,
    parse_json_body,
    parse_sso_response,
)
from sufe_sso.errors import InvalidEnvelope, LoginError, NonJsonResponse, SsoBusinessError
from sufe_sso.http_client import SSOResponse


def _response(body: bytes, status: int = 200) -> SSOResponse:
    return SSOResponse(status, "OK", {"Content-Type": "application/json"}, body)


class TestParseJsonBody:

    def test_decodes_json(self):
        assert parse_json_body(_response(b'{"code": "0"}')) == {"code": "0"}

    def test_empty_body_is_empty_object(self):
        assert parse_json_body(_response(b"")) == {}

    def test_non_json_raises_with_snippet(self):
        with pytest.raises(NonJsonResponse) as excinfo:
            parse_json_body(_response(b"<html>maintenance</html>"))
        assert "<html>maintenance</html>" in str(excinfo.value)
        assert excinfo.value.kind == "non_json"

    def test_non_json_snippet_truncated_to_200_chars(self):
        raw = "<" + "x" * 500
        with pytest.raises(NonJsonResponse) as excinfo:
            parse_json_body(_response(raw.encode()))
        assert excinfo.value.body == raw[:200]
        assert raw[:200] in str(excinfo.value)
        assert raw[:201] not in str(excinfo.value)

    def test_utf8_body(self):
        body = '{"msg": "图形验证码校验失败"}'.encode("utf-8")
        assert parse_json_body(_response(body)) == {"msg": "图形验证码校验失败"}

    def test_leading_bom_is_ignored(self):
        body = b"\xef\xbb\xbf" + '{"code": "0", "msg": "成功"}'.encode("utf-8")
        assert parse_json_body(_response(body)) == {"code": "0", "msg": "成功"}


class TestParseSsoResponse:

    def test_valid_envelope(self):
        env = parse_sso_response(
            {"code": "0", "msg": "ok", "timestamp": 1771727069176, "data": 60}, "send SMS",
        )
        assert env.code == "0"
        assert env.msg == "ok"
        assert env.timestamp == 1771727069176
        assert env.data == 60
        assert env.ok

    def test_data_is_optional(self):
        env = parse_sso_response({"code": "0", "msg": "ok", "timestamp": 1.5}, "login")
        assert env.data is None

    @pytest.mark.parametrize("body", [[], "text", 42, None])
    def test_non_object_rejected(self, body):
        with pytest.raises(InvalidEnvelope) as excinfo:
            parse_sso_response(body, "login")
        assert "login" in str(excinfo.value)
        assert excinfo.value.action == "login"

    def test_missing_code(self):
        with pytest.raises(InvalidEnvelope, match="missing code/msg"):
            parse_sso_response({"msg": "ok", "timestamp": 1}, "send SMS")

    def test_numeric_code_rejected(self):
        with pytest.raises(InvalidEnvelope, match="missing code/msg"):
            parse_sso_response({"code": 0, "msg": "ok", "timestamp": 1}, "send SMS")

    def test_missing_msg(self):
        with pytest.raises(InvalidEnvelope, match="missing code/msg"):
            parse_sso_response({"code": "0", "timestamp": 1}, "send SMS")

    def test_missing_timestamp(self):
        with pytest.raises(InvalidEnvelope, match="missing timestamp"):
            parse_sso_response({"code": "0", "msg": "ok"}, "fetch captcha")

    @pytest.mark.parametrize("timestamp", ["1771727069176", True, None])
    def test_non_numeric_timestamp(self, timestamp):
        with pytest.raises(InvalidEnvelope, match="missing timestamp"):
            parse_sso_response({"code": "0", "msg": "ok", "timestamp": timestamp}, "login")


class TestAssertSsoSuccess:

    def test_success_passes(self):
        assert_sso_success(SSOEnvelope("0", "ok", 1, 60), "send SMS")

    def test_business_error_carries_code_and_msg(self):
        env = SSOEnvelope("SSO10010", "wrong code, 4 attempts left", 1, {"failedLogins": 1})
        with pytest.raises(SsoBusinessError) as excinfo:
            assert_sso_success(env, "login")
        err = excinfo.value
        assert err.code == "SSO10010"
        assert err.msg == "wrong code, 4 attempts left"
        assert str(err) == "login failed (SSO10010): wrong code, 4 attempts left"
        assert err.kind == "business"
        assert isinstance(err, LoginError)

    def test_code_must_be_exactly_zero(self):
        with pytest.raises(SsoBusinessError):
            assert_sso_success(SSOEnvelope("00", "ok", 1), "login")


class TestErrorDetail:

    def test_string_truncated_to_500(self):
        assert error_detail("x" * 600) == "x" * 500

    def test_dict_serialized(self):
        assert error_detail({"status": 500}) == '{"status": 500}'

    def test_non_ascii_kept(self):
        assert error_detail({"msg": "失败"}) == '{"msg": "失败"}'

    def test_other_types_empty(self):
        assert error_detail(None) == ""
        assert error_detail(42) == ""


def test_envelope_equality_and_to_dict():
    a = SSOEnvelope("0", "ok", 1, {"failedLogins": 0})
    b = SSOEnvelope("0", "ok", 1, {"failedLogins": 0})
    assert a == b
    assert a.to_dict() == {"code": "0", "msg": "ok", "timestamp": 1, "data": {"failedLogins": 0}}
    assert a != SSOEnvelope("1", "ok", 1, {"failedLogins": 0})
