"""Demo HTTP server that drives the SSO login from a browser.

Runs on ``http.server`` from stdlib.  The browser never sees the upstream
session cookie: ``/api/captcha`` stores it in a ``SessionStore`` and hands the
browser an opaque ``sufe_sid`` cookie instead.

Routes:

  ``GET  /``             — minimal HTML page driving the three steps
  ``GET  /api/captcha``  — captcha PNG, sets the ``sufe_sid`` cookie
  ``POST /api/sms``      — ``{username, vcode}`` → ``{ok, result}``
  ``POST /api/login``    — ``{username, smsCode}`` → ``{ok, result}``

Every failure is HTTP 400 ``{ok: false, error, kind}`` where ``kind`` is the
``LoginError.kind`` of the underlying failure.  Unknown routes are 404.

Usage::

    with DemoServer(port=0) as server:
        print(server.base_url)
"""

import json
import logging
import threading
from http.cookies import CookieError, SimpleCookie
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional

from .client import SSOClient
from .errors import LoginError
from .session_store import SessionStore

logger = logging.getLogger(__name__)


SESSION_COOKIE_NAME = "sufe_sid"

# Default lifetime of a browser session id, in seconds
DEFAULT_SESSION_TTL = 600

INDEX_HTML = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>SUFE SSO demo</title></head>
<body>
  <h1>SUFE SSO SMS login</h1>
  <p><img id="captcha" alt="captcha"> <button id="refresh">Refresh</button></p>
  <p><input id="username" placeholder="username"></p>
  <p><input id="vcode" placeholder="captcha code"> <button id="sms">Send SMS</button></p>
  <p><input id="smsCode" placeholder="SMS code"> <button id="login">Log in</button></p>
  <pre id="out"></pre>
  <script>
    const $ = (id) => document.getElementById(id);
    const refresh = () => { $("captcha").src = "/api/captcha?t=" + Date.now(); };
    const post = async (path, body) => {
      const resp = await fetch(path, {
        method: "POST",
        headers: {"Content-Type": "application/json"},
        body: JSON.stringify(body),
      });
      $("out").textContent = JSON.stringify(await resp.json(), null, 2);
    };
    $("refresh").onclick = refresh;
    $("sms").onclick = () => post("/api/sms", {username: $("username").value, vcode: $("vcode").value});
    $("login").onclick = () => post("/api/login", {username: $("username").value, smsCode: $("smsCode").value});
    refresh();
  </script>
</body>
</html>
"""


class RequestError(LoginError):
    """The browser's request to the demo server itself was unusable."""

    kind = "bad_request"


class SessionNotFound(RequestError):
    """The browser presented no session id, or one the store no longer knows."""

    kind = "session_not_found"


class DemoRequestHandler(BaseHTTPRequestHandler):
    """Handles demo requests.

    The ``SSOClient`` and ``SessionStore`` live on the ``HTTPServer``
    instance, which is shared across all handler instances.
    """

    server_version = "sufe-sso-demo"

    def log_message(self, format, *args):
        logger.info("%s %s", self.address_string(), format % args)

    # -- Response helpers ----------------------------------------------------

    def _send_json(self, status: int, body: Any, extra_headers: Optional[Dict[str, str]] = None):
        self._send_bytes(status, json.dumps(body, ensure_ascii=False).encode("utf-8"),
                         "application/json; charset=utf-8", extra_headers)

    def _send_bytes(self, status: int, payload: bytes, content_type: str,
                    extra_headers: Optional[Dict[str, str]] = None):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        if extra_headers:
            for k, v in extra_headers.items():
                self.send_header(k, v)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _send_failure(self, exc: LoginError):
        self._send_json(400, {"ok": False, "error": exc.message, "kind": exc.kind})

    def _send_not_found(self):
        self._send_bytes(404, b"Not Found", "text/plain; charset=utf-8")

    # -- Request helpers -----------------------------------------------------

    def _path(self) -> str:
        return self.path.split("?")[0]

    def _browser_session_id(self) -> Optional[str]:
        header = self.headers.get("Cookie")
        if not header:
            return None
        jar = SimpleCookie()
        try:
            jar.load(header)
        except CookieError:
            return None
        morsel = jar.get(SESSION_COOKIE_NAME)
        return morsel.value if morsel else None

    def _upstream_cookie(self) -> str:
        cookie = self.server.store.resolve(self._browser_session_id())
        if not cookie:
            raise SessionNotFound("Session not found, fetch captcha first.")
        return cookie

    def _drain_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = -1
        if length < 0:
            raise RequestError("Invalid Content-Length.")
        return self.rfile.read(length) if length else b""

    def _read_json(self) -> Dict[str, Any]:
        if self._body_error is not None:
            raise self._body_error
        raw = self._raw_body
        try:
            body = json.loads(raw) if raw else {}
        except ValueError:
            raise RequestError("Request body must be JSON.") from None
        if not isinstance(body, dict):
            raise RequestError("Request body must be a JSON object.")
        return body

    # -- HTTP method handlers ------------------------------------------------

    def do_GET(self):
        path = self._path()
        if path == "/":
            return self._send_bytes(200, INDEX_HTML.encode("utf-8"), "text/html; charset=utf-8")
        if path == "/api/captcha":
            return self._handle_captcha()
        self._send_not_found()

    def do_POST(self):
        # Read the body up front so an early error reply never leaves it unread
        self._raw_body, self._body_error = b"", None
        try:
            self._raw_body = self._drain_body()
        except RequestError as exc:
            # The body length is unknown; reply once routed, then drop the connection
            self._body_error = exc
            self.close_connection = True
        path = self._path()
        if path == "/api/sms":
            return self._handle_sms()
        if path == "/api/login":
            return self._handle_login()
        self._send_not_found()

    # -- Routes --------------------------------------------------------------

    def _handle_captcha(self):
        try:
            captcha = self.server.client.fetch_captcha()
        except LoginError as exc:
            logger.warning("captcha failed: %s", exc)
            return self._send_failure(exc)

        sid = self.server.store.create(captcha.cookie)
        self._send_bytes(200, captcha.image, "image/png", {
            "Set-Cookie": f"{SESSION_COOKIE_NAME}={sid}; Path=/; HttpOnly; SameSite=Lax",
            "Cache-Control": "no-store",
        })

    def _handle_sms(self):
        try:
            body = self._read_json()
            cookie = self._upstream_cookie()
            username, vcode = body.get("username"), body.get("vcode")
            if not username or not vcode:
                raise RequestError("username and vcode are required.")
            result = self.server.client.send_sms(username, vcode, cookie)
        except LoginError as exc:
            logger.warning("sms failed: %s", exc)
            return self._send_failure(exc)
        self._send_json(200, {"ok": True, "result": result.body.to_dict()})

    def _handle_login(self):
        try:
            body = self._read_json()
            cookie = self._upstream_cookie()
            username, sms_code = body.get("username"), body.get("smsCode")
            if not username or not sms_code:
                raise RequestError("username and smsCode are required.")
            result = self.server.client.login(username, sms_code, cookie)
        except LoginError as exc:
            logger.warning("login failed: %s", exc)
            return self._send_failure(exc)
        self._send_json(200, {"ok": True, "result": result.body.to_dict()})


class DemoServer:
    """Threaded demo server.  Usable as a context manager for tests::

        with DemoServer(client=SSOClient(base_url=upstream.base_url)) as server:
            ...

    Args:
        host:    Interface to bind.
        port:    TCP port to listen on (0 = auto-assign).
        client:  Upstream SSO client (default: production service).
        store:   Session store (default: one with ``DEFAULT_SESSION_TTL``).
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 3000,
                 client: Optional[SSOClient] = None, store: Optional[SessionStore] = None):
        self.client = client or SSOClient()
        self.store = store if store is not None else SessionStore(ttl=DEFAULT_SESSION_TTL)

        self.server = ThreadingHTTPServer((host, port), DemoRequestHandler)
        self.server.daemon_threads = True
        self.server.client = self.client
        self.server.store = self.store
        self._thread = None

    @property
    def base_url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"

    def serve_forever(self):
        """Serve in the calling thread until interrupted."""
        logger.info("Demo server running at %s", self.base_url)
        try:
            self.server.serve_forever()
        finally:
            self.server.server_close()

    def start(self):
        """Start the server in a daemon thread."""
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        """Shut down the server and join the thread."""
        self.server.shutdown()
        self.server.server_close()
        if self._thread:
            self._thread.join(timeout=5)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
