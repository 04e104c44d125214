"""Error taxonomy for the SSO login flow.

Every failure raised by this package derives from ``LoginError``.  Each
subclass carries a stable ``kind`` string so callers (and the demo server's
JSON responses) can branch on the failure type instead of parsing messages:

- ``TransportError``        — non-2xx HTTP status or connection failure
- ``NonJsonResponse``       — body expected to be JSON did not decode
- ``InvalidEnvelope``       — JSON decoded but lacks ``code``/``msg``/``timestamp``
- ``MissingSessionCookie``  — captcha response carried no usable session cookie
- ``SsoBusinessError``      — well-formed envelope with ``code != "0"``
- ``FlowStateError``        — a ``LoginFlow`` step was invoked out of order

``SsoBusinessError`` is the expected outcome of a mistyped captcha or SMS
code and should be presented as a user-correctable mistake.
"""

from typing import Optional


class LoginError(Exception):
    """Base class for all SSO login failures."""

    kind = "login_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"kind": self.kind, "error": self.message}


class TransportError(LoginError):
    """The HTTP call did not complete with a 2xx status.

    Attributes:
        status:  HTTP status code, or ``None`` when no response was received.
        reason:  HTTP reason phrase (or the underlying connection error text).
        detail:  Up to 500 characters of the response body for diagnostics.
    """

    kind = "transport"

    def __init__(self, message: str, status: Optional[int] = None,
                 reason: str = "", detail: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.detail = detail


class NonJsonResponse(LoginError):
    """The response body could not be decoded as JSON."""

    kind = "non_json"

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class InvalidEnvelope(LoginError):
    """The decoded JSON is not a ``{code, msg, timestamp, data}`` envelope."""

    kind = "invalid_envelope"

    def __init__(self, message: str, action: str = ""):
        super().__init__(message)
        self.action = action


class MissingSessionCookie(LoginError):
    """The captcha response did not set a session cookie."""

    kind = "missing_cookie"


class SsoBusinessError(LoginError):
    """The upstream service rejected the request (``code != "0"``).

    ``code`` and ``msg`` are carried verbatim from the upstream envelope.
    """

    kind = "business"

    def __init__(self, action: str, code: str, msg: str):
        super().__init__(f"{action} failed ({code}): {msg}")
        self.action = action
        self.code = code
        self.msg = msg

    def __repr__(self):
        return f"SsoBusinessError(action={self.action!r}, code={self.code!r}, msg={self.msg!r})"


class FlowStateError(LoginError):
    """A login step was called before the step it depends on."""

    kind = "flow_state"
