"""Stateful wrapper that enforces captcha → SMS → login ordering.

``SSOClient`` only orders the steps through data dependency: nothing stops a
caller passing a cookie from an abandoned session into ``login()``.
``LoginFlow`` owns the cookie for one login attempt and rejects out-of-order
calls locally, before any network I/O.

State transitions::

    INITIATED ──fetch_captcha──> CAPTCHA_FETCHED ──send_sms──> SMS_SENT ──login──> LOGGED_IN
        ^                          |  ^                          |  |
        └── fetch_captcha (any state but LOGGED_IN) ─────────────┘  └── send_sms (resend)

A step that raises leaves the state unchanged, so a mistyped code can simply
be retried.
"""

import logging
from typing import Optional

from .client import CaptchaResult, LoginResult, SmsSendResult, SSOClient
from .errors import FlowStateError

logger = logging.getLogger(__name__)


INITIATED = "initiated"
CAPTCHA_FETCHED = "captcha_fetched"
SMS_SENT = "sms_sent"
LOGGED_IN = "logged_in"


class LoginFlow:
    """One login attempt for ``username`` against ``client``."""

    def __init__(self, client: SSOClient, username: str):
        self.client = client
        self.username = username
        self.state = INITIATED
        self._cookie: Optional[str] = None

    @property
    def cookie(self) -> Optional[str]:
        """Upstream session cookie captured by the last captcha fetch."""
        return self._cookie

    def fetch_captcha(self) -> CaptchaResult:
        """Start (or restart) the session.  Returns the new captcha."""
        if self.state == LOGGED_IN:
            raise FlowStateError("Already logged in; start a new flow")
        result = self.client.fetch_captcha()
        self._cookie = result.cookie
        self._transition(CAPTCHA_FETCHED)
        return result

    def send_sms(self, vcode: str) -> SmsSendResult:
        if self.state not in (CAPTCHA_FETCHED, SMS_SENT):
            raise FlowStateError(f"Cannot send SMS in state '{self.state}', fetch captcha first")
        result = self.client.send_sms(self.username, vcode, self._cookie)
        self._transition(SMS_SENT)
        return result

    def login(self, sms_code: str) -> LoginResult:
        if self.state != SMS_SENT:
            raise FlowStateError(f"Cannot log in in state '{self.state}', send SMS first")
        result = self.client.login(self.username, sms_code, self._cookie)
        self._transition(LOGGED_IN)
        return result

    def _transition(self, new_state: str):
        logger.debug("flow %s: %s -> %s", self.username, self.state, new_state)
        self.state = new_state
