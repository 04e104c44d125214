"""Integration tests for the demo server, backed by the mock SSO upstream.

The browser is played by ``requests``; its ``sufe_sid`` cookie is threaded by
hand so tests can also present missing or forged session ids.
"""

import http.client
import json
from urllib.parse import urlsplit

import pytest
import requests
from sufe_sso.client import LOGIN_PATH, SMS_SEND_PATH, SSOClient
from sufe_sso.server import SESSION_COOKIE_NAME, DemoServer
from sufe_sso.session_store import SessionStore
from tests.mock_sso_server import CAPTCHA_PNG, VALID_SMS_CODE, VALID_VCODE, MockSSOServer

USERNAME = "20220001"


@pytest.fixture
def upstream():
    with MockSSOServer() as s:
        yield s


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def demo(upstream, store):
    client = SSOClient(base_url=upstream.base_url, timeout=5)
    with DemoServer(port=0, client=client, store=store) as server:
        yield server


def _captcha(demo):
    resp = requests.get(demo.base_url + "/api/captcha", timeout=5)
    assert resp.status_code == 200
    return resp, resp.headers["Set-Cookie"].split(";")[0]


def _post(demo, path, body, browser_cookie=None):
    headers = {"Cookie": browser_cookie} if browser_cookie else {}
    return requests.post(demo.base_url + path, json=body, headers=headers, timeout=5)


def test_index_page(demo):
    resp = requests.get(demo.base_url + "/", timeout=5)
    assert resp.status_code == 200
    assert resp.headers["Content-Type"].startswith("text/html")
    assert "/api/captcha" in resp.text


def test_captcha_sets_opaque_session_cookie(demo, store):
    resp, browser_cookie = _captcha(demo)
    assert resp.content == CAPTCHA_PNG
    assert resp.headers["Content-Type"] == "image/png"
    assert resp.headers["Cache-Control"] == "no-store"

    set_cookie = resp.headers["Set-Cookie"]
    assert "HttpOnly" in set_cookie
    assert "SameSite=Lax" in set_cookie
    assert "Path=/" in set_cookie

    name, sid = browser_cookie.split("=", 1)
    assert name == SESSION_COOKIE_NAME
    assert "JSESSIONID" not in sid
    assert store.resolve(sid) == "JSESSIONID=00000001"


def test_full_flow_uses_upstream_cookie(demo, upstream):
    _, browser_cookie = _captcha(demo)

    sms = _post(demo, "/api/sms", {"username": USERNAME, "vcode": VALID_VCODE}, browser_cookie)
    assert sms.status_code == 200
    body = sms.json()
    assert body["ok"] is True
    assert body["result"]["code"] == "0"
    assert body["result"]["data"] == 60

    login = _post(demo, "/api/login", {"username": USERNAME, "smsCode": VALID_SMS_CODE},
                  browser_cookie)
    assert login.status_code == 200
    assert login.json()["result"]["data"]["failedLogins"] == 0

    assert upstream.requests_to(SMS_SEND_PATH)[0].cookie == "JSESSIONID=00000001"
    assert upstream.requests_to(LOGIN_PATH)[0].cookie == "JSESSIONID=00000001"


def test_wrong_vcode_reports_business_error(demo):
    _, browser_cookie = _captcha(demo)
    resp = _post(demo, "/api/sms", {"username": USERNAME, "vcode": "nope"}, browser_cookie)
    assert resp.status_code == 400
    body = resp.json()
    assert body["ok"] is False
    assert body["kind"] == "business"
    assert "ESSO000004" in body["error"]
    assert "captcha check failed" in body["error"]


def test_wrong_sms_code_reports_business_error(demo):
    _, browser_cookie = _captcha(demo)
    _post(demo, "/api/sms", {"username": USERNAME, "vcode": VALID_VCODE}, browser_cookie)
    resp = _post(demo, "/api/login", {"username": USERNAME, "smsCode": "000000"}, browser_cookie)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "business"
    assert "SSO10010" in resp.json()["error"]


@pytest.mark.parametrize("path", ["/api/sms", "/api/login"])
def test_missing_session(demo, upstream, path):
    resp = _post(demo, path, {"username": USERNAME, "vcode": "x", "smsCode": "y"})
    assert resp.status_code == 400
    assert resp.json() == {
        "ok": False,
        "error": "Session not found, fetch captcha first.",
        "kind": "session_not_found",
    }
    assert upstream.requests == []


def test_unknown_session_id(demo):
    resp = _post(demo, "/api/sms", {"username": USERNAME, "vcode": VALID_VCODE},
                 f"{SESSION_COOKIE_NAME}=forged")
    assert resp.json()["kind"] == "session_not_found"


def test_expired_session(upstream):
    store = SessionStore(ttl=0.000001)
    with DemoServer(port=0, client=SSOClient(base_url=upstream.base_url), store=store) as demo:
        _, browser_cookie = _captcha(demo)
        resp = _post(demo, "/api/sms", {"username": USERNAME, "vcode": VALID_VCODE},
                     browser_cookie)
    assert resp.json()["kind"] == "session_not_found"


@pytest.mark.parametrize("path,body,message", [
    ("/api/sms", {"username": USERNAME}, "username and vcode are required."),
    ("/api/sms", {"vcode": VALID_VCODE}, "username and vcode are required."),
    ("/api/login", {"username": USERNAME}, "username and smsCode are required."),
])
def test_missing_fields(demo, path, body, message):
    _, browser_cookie = _captcha(demo)
    resp = _post(demo, path, body, browser_cookie)
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": message, "kind": "bad_request"}


def test_invalid_json_body(demo):
    _, browser_cookie = _captcha(demo)
    resp = requests.post(demo.base_url + "/api/sms", data=b"not json",
                         headers={"Cookie": browser_cookie}, timeout=5)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "bad_request"


@pytest.mark.parametrize("length", ["abc", "-1"])
def test_invalid_content_length(demo, length):
    _, browser_cookie = _captcha(demo)
    url = urlsplit(demo.base_url)
    conn = http.client.HTTPConnection(url.hostname, url.port, timeout=5)
    try:
        conn.putrequest("POST", "/api/sms")
        conn.putheader("Cookie", browser_cookie)
        conn.putheader("Content-Type", "application/json")
        conn.putheader("Content-Length", length)
        conn.endheaders()
        resp = conn.getresponse()
        status, body = resp.status, json.loads(resp.read())
    finally:
        conn.close()
    assert status == 400
    assert body == {"ok": False, "error": "Invalid Content-Length.", "kind": "bad_request"}


def test_upstream_missing_cookie_surfaces_kind():
    with MockSSOServer(non_conformances={"no_set_cookie": True}) as upstream:
        client = SSOClient(base_url=upstream.base_url)
        with DemoServer(port=0, client=client, store=SessionStore()) as demo:
            resp = requests.get(demo.base_url + "/api/captcha", timeout=5)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "missing_cookie"
    assert "Set-Cookie" not in resp.headers


@pytest.mark.parametrize("method,path", [
    ("GET", "/nope"),
    ("POST", "/api/captcha"),
    ("GET", "/api/sms"),
])
def test_unmatched_routes_404(demo, method, path):
    resp = requests.request(method, demo.base_url + path, timeout=5)
    assert resp.status_code == 404
    assert resp.text == "Not Found"
