"""Thin HTTP abstraction for talking to the SSO service.

Wraps ``requests`` and normalizes every reply into an ``SSOResponse`` so the
protocol layer never touches library-specific objects.

Key behaviors:
- ``build_headers()`` produces the browser-like base header set sent on every call
- Redirects are never followed; a 3xx is surfaced to the caller as-is
- Every ``Set-Cookie`` entry is preserved in arrival order
- Connection failures are raised as ``TransportError`` with ``status=None``
- No retries; the caller decides whether a step is worth repeating
- ``redact_cookie()`` helper for safe logging of headers
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import TransportError

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:147.0) "
    "Gecko/20100101 Firefox/147.0"
)

_SECRET_HEADERS = ("cookie", "set-cookie")


def build_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    """Return the base outbound header set.

    A new dict is returned on every call so callers may extend it with
    ``Accept``, ``Content-Type`` or ``Cookie`` without side effects.
    """
    return {
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
        "Accept": "*/*",
        "Accept-Language": "zh_CN",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Connection": "keep-alive",
    }


class SSOResponse:
    """Normalized HTTP response wrapper.

    ``content`` is the raw body.  The SSO service answers the captcha
    call with PNG bytes and everything else with JSON text.
    """

    def __init__(
        self,
        status_code: int,
        reason: str,
        headers: Dict[str, str],
        content: bytes,
        set_cookies: Optional[List[str]] = None,
    ):
        self.status_code = status_code
        self.reason = reason
        self.headers = headers
        self.content = content
        self.set_cookies = list(set_cookies or [])

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        # utf-8-sig drops a leading BOM, which json.loads would reject
        return self.content.decode("utf-8-sig", errors="replace")

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lower = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

    def __repr__(self):
        return f"SSOResponse({self.status_code} {self.reason!r}, {len(self.content)} bytes)"


class SSOHttpClient:
    """HTTP transport for SSO interactions.

    Args:
        timeout:        Per-request timeout in seconds.
        proxy:          HTTP/HTTPS proxy URL.
        ca_bundle:      Path to custom CA certificate bundle file.
        tls_no_verify:  Skip TLS certificate verification.
    """

    def __init__(
        self,
        timeout: float = 30,
        proxy: Optional[str] = None,
        ca_bundle: Optional[str] = None,
        tls_no_verify: bool = False,
    ):
        self.timeout = timeout
        self.proxy = proxy
        self.ca_bundle = ca_bundle
        self.tls_no_verify = tls_no_verify

    # -- Public API ----------------------------------------------------------

    def get(self, url: str, headers: Dict[str, str]) -> SSOResponse:
        """Send a GET request."""
        return self._request("GET", url, headers)

    def post_json(self, url: str, headers: Dict[str, str],
                  payload: Dict[str, Any]) -> SSOResponse:
        """Send a POST request with a JSON-encoded body."""
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self._request("POST", url, headers, data=body)

    # -- Internals -----------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[bytes] = None,
    ) -> SSOResponse:
        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": self.timeout,
            "allow_redirects": False,
        }
        if self.ca_bundle:
            kwargs["verify"] = self.ca_bundle
        elif self.tls_no_verify:
            kwargs["verify"] = False
        else:
            kwargs["verify"] = True

        if self.proxy:
            kwargs["proxies"] = {"http": self.proxy, "https": self.proxy}

        if data is not None:
            kwargs["data"] = data

        logger.debug("%s %s headers=%s", method, url, redact_cookie(headers))
        try:
            resp = requests.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(
                f"{method} {url} failed: {exc}", status=None, reason=str(exc),
            ) from exc

        logger.debug("%s %s -> %s %s", method, url, resp.status_code, resp.reason)
        return SSOResponse(
            resp.status_code,
            resp.reason or "",
            dict(resp.headers),
            resp.content,
            set_cookies=_set_cookie_entries(resp),
        )


def _set_cookie_entries(resp: requests.Response) -> List[str]:
    """Return each ``Set-Cookie`` header separately.

    ``requests`` folds repeated headers into one comma-joined value, which is
    ambiguous for cookies carrying ``Expires=`` dates, so read the raw
    urllib3 header list instead.
    """
    return list(resp.raw.headers.getlist("Set-Cookie"))


def redact_cookie(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with cookie values replaced by ``***REDACTED***``.

    Use this when including headers in logs or error messages to avoid
    leaking the upstream session.
    """
    redacted = dict(headers)
    for key in list(redacted.keys()):
        if key.lower() in _SECRET_HEADERS:
            redacted[key] = "***REDACTED***"
    return redacted
