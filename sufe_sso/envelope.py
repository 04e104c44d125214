"""Decodes and validates the SSO service's JSON response envelope.

Every JSON reply from the SSO service is wrapped as::

    {"code": "0", "msg": "success", "timestamp": 1771727078064, "data": ...}

``code == "0"`` means success.  Any other code is a business failure whose
``msg`` is human-readable (and usually user-facing).  Validation happens in
three separate stages so each failure surfaces with its own error type:

1. ``parse_json_body()``    — bytes to JSON (``NonJsonResponse``)
2. ``parse_sso_response()`` — JSON to ``SSOEnvelope`` (``InvalidEnvelope``)
3. ``assert_sso_success()`` — envelope to success (``SsoBusinessError``)

An HTTP 200 with a non-zero ``code`` is still a failure; transport status is
checked by the caller before stage 2.
"""

import json
from typing import Any, Dict, Generic, TypeVar

from .errors import InvalidEnvelope, NonJsonResponse, SsoBusinessError
from .http_client import SSOResponse

T = TypeVar("T")

SUCCESS_CODE = "0"

# Truncation limits for diagnostics embedded in error messages
_RAW_BODY_LIMIT = 200
_DETAIL_LIMIT = 500


class SSOEnvelope(Generic[T]):
    """A structurally valid response envelope.

    ``data`` is passed through untyped; each operation documents the payload
    shape it expects.
    """

    def __init__(self, code: str, msg: str, timestamp: float, data: T = None):
        self.code = code
        self.msg = msg
        self.timestamp = timestamp
        self.data = data

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS_CODE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "msg": self.msg,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def __eq__(self, other):
        if not isinstance(other, SSOEnvelope):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"SSOEnvelope(code={self.code!r}, msg={self.msg!r}, data={self.data!r})"


def parse_json_body(response: SSOResponse) -> Any:
    """Decode the response body as JSON.

    An empty body decodes to ``{}``.  Anything that isn't JSON raises
    ``NonJsonResponse`` with the first 200 characters of the raw text.
    """
    text = response.text
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        snippet = text[:_RAW_BODY_LIMIT]
        raise NonJsonResponse(
            f"Service returned a non-JSON response: {snippet}", body=snippet,
        ) from None


def parse_sso_response(body: Any, action: str) -> SSOEnvelope:
    """Validate the envelope structure of a decoded JSON body."""
    if not isinstance(body, dict):
        raise InvalidEnvelope(f"{action} failed: invalid response format", action=action)

    code = body.get("code")
    msg = body.get("msg")
    if not isinstance(code, str) or not isinstance(msg, str):
        raise InvalidEnvelope(f"{action} failed: missing code/msg", action=action)

    # bool is an int subclass; a JSON true/false is not a timestamp
    timestamp = body.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise InvalidEnvelope(f"{action} failed: missing timestamp", action=action)

    return SSOEnvelope(code, msg, timestamp, body.get("data"))


def assert_sso_success(envelope: SSOEnvelope, action: str) -> None:
    """Raise ``SsoBusinessError`` unless the envelope reports success."""
    if envelope.code != SUCCESS_CODE:
        raise SsoBusinessError(action, envelope.code, envelope.msg)


def error_detail(body: Any) -> str:
    """Render a decoded (or raw) body as a short diagnostic string."""
    if isinstance(body, str):
        return body[:_DETAIL_LIMIT]
    if isinstance(body, (dict, list)):
        return json.dumps(body, ensure_ascii=False)[:_DETAIL_LIMIT]
    return ""
