"""sufe-sso: client for the SUFE web single-sign-on SMS login.

Automates the three-step, cookie-bound handshake (captcha → SMS code → login)
against ``login.sufe.edu.cn``, with typed errors that separate transport and
format failures from upstream business rejections.  ``sufe-sso serve`` runs a
small browser demo on top of the same client.
"""

__version__ = "0.1.0"

from .client import (  # noqa: E402
    SUFE_ENDPOINTS,
    CaptchaResult,
    LoginResult,
    SmsSendResult,
    SSOClient,
    fetch_captcha,
    login,
    send_sms,
)
from .envelope import SSOEnvelope, assert_sso_success, parse_sso_response  # noqa: E402
from .errors import (  # noqa: E402
    FlowStateError,
    InvalidEnvelope,
    LoginError,
    MissingSessionCookie,
    NonJsonResponse,
    SsoBusinessError,
    TransportError,
)
from .flow import LoginFlow  # noqa: E402
from .http_client import build_headers  # noqa: E402
from .session_store import SessionStore  # noqa: E402
