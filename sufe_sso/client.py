"""Protocol client for the SUFE web SSO SMS login.

The login is a three-step handshake bound together by one upstream session
cookie:

1. ``fetch_captcha()`` — GET the captcha image.  The response's ``Set-Cookie``
   opens the session; this is the only step that sends no cookie.
2. ``send_sms()``      — GET the SMS endpoint with the captcha's displayed code.
3. ``login()``         — POST the SMS code.

The client holds no state between calls.  Callers thread the cookie from
step 1 into steps 2 and 3 unchanged; results echo the caller's cookie rather
than anything the server sends back.
"""

import logging
import time
from typing import Any, Dict, Optional, Union
from urllib.parse import urlencode

from .envelope import (
    SSOEnvelope,
    assert_sso_success,
    error_detail,
    parse_json_body,
    parse_sso_response,
)
from .errors import MissingSessionCookie, NonJsonResponse, SsoBusinessError, TransportError
from .http_client import SSOHttpClient, SSOResponse, build_headers

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://login.sufe.edu.cn"

CAPTCHA_PATH = "/esc-sso/api/v1/image/getRandcode"
SMS_SEND_PATH = "/esc-sso/api/v3/sms/send"
LOGIN_PATH = "/esc-sso/api/v3/auth/doLogin"

SUFE_ENDPOINTS = {
    "captcha": DEFAULT_BASE_URL + CAPTCHA_PATH,
    "sms_send": DEFAULT_BASE_URL + SMS_SEND_PATH,
    "do_login": DEFAULT_BASE_URL + LOGIN_PATH,
}

JSON_ACCEPT = "application/json, text/plain, */*"

# Action names embedded in error messages
ACTION_CAPTCHA = "fetch captcha"
ACTION_SMS = "send SMS"
ACTION_LOGIN = "login"

# Remaining-count style scalar returned by the SMS endpoint
SmsSendData = Union[int, float, str, bool, None]


class CaptchaResult:
    """Session cookie plus the captcha image that opened it."""

    def __init__(self, cookie: str, image: bytes):
        self.cookie = cookie
        self.image = image

    def to_dict(self) -> Dict[str, Any]:
        return {"cookie": self.cookie, "image_bytes": len(self.image)}

    def __repr__(self):
        return f"CaptchaResult(cookie=<redacted>, image={len(self.image)} bytes)"


class SmsSendResult:
    """Successful SMS dispatch.  ``body.data`` is the upstream scalar payload."""

    def __init__(self, status: int, body: "SSOEnvelope[SmsSendData]", cookie: str, url: str):
        self.status = status
        self.body = body
        self.cookie = cookie
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body.to_dict(), "url": self.url}


class LoginResult:
    """Successful login.  ``body.data`` is ``{redirect?, failedLogins?, authType?}``."""

    def __init__(self, status: int, body: "SSOEnvelope[Dict[str, Any]]", cookie: str):
        self.status = status
        self.body = body
        self.cookie = cookie

    @property
    def failed_logins(self) -> Optional[int]:
        data = self.body.data
        if isinstance(data, dict):
            return data.get("failedLogins")
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body.to_dict()}


class SSOClient:
    """Client for the captcha → SMS → login handshake.

    Args:
        base_url:       Scheme and host of the SSO service.
        user_agent:     Default ``User-Agent`` for every call (per-call override wins).
        timeout:        Per-request timeout in seconds.
        proxy:          HTTP/HTTPS proxy URL.
        ca_bundle:      Path to custom CA certificate bundle file.
        tls_no_verify:  Skip TLS certificate verification.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: Optional[str] = None,
        timeout: float = 30,
        proxy: Optional[str] = None,
        ca_bundle: Optional[str] = None,
        tls_no_verify: bool = False,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.http = SSOHttpClient(
            timeout=timeout, proxy=proxy, ca_bundle=ca_bundle, tls_no_verify=tls_no_verify,
        )

    @property
    def captcha_url(self) -> str:
        return self.base_url + CAPTCHA_PATH

    @property
    def sms_send_url(self) -> str:
        return self.base_url + SMS_SEND_PATH

    @property
    def login_url(self) -> str:
        return self.base_url + LOGIN_PATH

    # -- Public API ----------------------------------------------------------

    def fetch_captcha(self, user_agent: Optional[str] = None) -> CaptchaResult:
        """Open a new upstream session and return its cookie and captcha PNG."""
        headers = build_headers(user_agent or self.user_agent)
        resp = self.http.get(self.captcha_url, headers)
        if not resp.ok:
            raise _transport_error(resp, ACTION_CAPTCHA)

        cookie = extract_cookie(resp)
        logger.debug("captcha fetched: %d bytes", len(resp.content))
        return CaptchaResult(cookie, resp.content)

    def send_sms(
        self,
        username: str,
        vcode: str,
        cookie: str,
        timestamp: Optional[int] = None,
        user_agent: Optional[str] = None,
    ) -> SmsSendResult:
        """Ask the service to text a login code to ``username``'s phone.

        ``vcode`` is the code shown in the captcha image.  ``timestamp``
        (milliseconds) is a cache-buster and defaults to the current time.
        """
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        query = urlencode({"username": username, "vcode": vcode, "_": str(timestamp)})
        url = f"{self.sms_send_url}?{query}"

        headers = build_headers(user_agent or self.user_agent)
        headers["Accept"] = JSON_ACCEPT
        headers["Cookie"] = cookie

        resp = self.http.get(url, headers)
        envelope = _parse_envelope(resp, ACTION_SMS)
        return SmsSendResult(resp.status_code, envelope, cookie, url)

    def login(
        self,
        username: str,
        sms_code: str,
        cookie: str,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Complete the login with the code received by SMS."""
        payload = {
            "authType": "webSmsAuth",
            "dataField": {
                "username": username,
                "password": "",
                "smsCode": sms_code,
                "vcode": "",
            },
            "redirectUri": "",
        }

        headers = build_headers(user_agent or self.user_agent)
        headers["Content-Type"] = "application/json"
        headers["Accept"] = JSON_ACCEPT
        headers["Cookie"] = cookie

        resp = self.http.post_json(self.login_url, headers, payload)
        envelope = _parse_envelope(resp, ACTION_LOGIN)
        return LoginResult(resp.status_code, envelope, cookie)


def extract_cookie(response: SSOResponse) -> str:
    """Return ``name=value`` from the first ``Set-Cookie`` entry."""
    if not response.set_cookies:
        raise MissingSessionCookie("Unable to obtain session cookie")
    cookie = response.set_cookies[0].split(";")[0].strip()
    if not cookie:
        raise MissingSessionCookie("Session cookie is empty")
    return cookie


def _transport_error(response: SSOResponse, action: str) -> TransportError:
    """Build a ``TransportError`` for a non-2xx response.

    The body is decoded as JSON when possible purely for diagnostics; a body
    that isn't JSON is reported as raw text.
    """
    try:
        body = parse_json_body(response)
    except NonJsonResponse:
        body = response.text
    detail = error_detail(body)
    message = f"{action} failed: {response.status_code} {response.reason} {detail}".strip()
    return TransportError(message, status=response.status_code,
                          reason=response.reason, detail=detail)


def _parse_envelope(response: SSOResponse, action: str) -> SSOEnvelope:
    """Check status, decode and validate the envelope, and assert success."""
    if not response.ok:
        raise _transport_error(response, action)

    envelope = parse_sso_response(parse_json_body(response), action)
    try:
        assert_sso_success(envelope, action)
    except SsoBusinessError as exc:
        logger.info("%s rejected by upstream: %s %s", action, exc.code, exc.msg)
        raise
    return envelope


# -- Module-level convenience API ----------------------------------------------

_default_client: Optional[SSOClient] = None


def _client() -> SSOClient:
    global _default_client
    if _default_client is None:
        _default_client = SSOClient()
    return _default_client


def fetch_captcha(user_agent: Optional[str] = None) -> CaptchaResult:
    """``SSOClient().fetch_captcha()`` against the production service."""
    return _client().fetch_captcha(user_agent=user_agent)


def send_sms(username: str, vcode: str, cookie: str,
             timestamp: Optional[int] = None, user_agent: Optional[str] = None) -> SmsSendResult:
    """``SSOClient().send_sms()`` against the production service."""
    return _client().send_sms(username, vcode, cookie, timestamp=timestamp, user_agent=user_agent)


def login(username: str, sms_code: str, cookie: str,
          user_agent: Optional[str] = None) -> LoginResult:
    """``SSOClient().login()`` against the production service."""
    return _client().login(username, sms_code, cookie, user_agent=user_agent)
