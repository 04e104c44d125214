"""CLI interface for sufe-sso using Click."""

import json
import logging
import sys
from typing import Any, Dict, Optional

import click

from . import __version__
from .client import DEFAULT_BASE_URL, SSOClient
from .errors import LoginError, SsoBusinessError
from .flow import LoginFlow
from .server import DEFAULT_SESSION_TTL, DemoServer
from .session_store import SessionStore


def _colorize(text: str, color: str) -> str:
    """Colorize text using ANSI codes."""
    colors = {
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "blue": "\033[94m",
        "reset": "\033[0m",
        "bold": "\033[1m",
    }
    if not sys.stdout.isatty():
        return text  # No colors if not a TTY
    return f"{colors.get(color, '')}{text}{colors['reset']}"


def _print_error(message: str, hint: Optional[str] = None):
    """Print a failure with color, plus an optional hint."""
    click.echo(_colorize(f"❌ {message}", "red"))
    if hint:
        click.echo(_colorize(f"   {hint}", "yellow"))


def _fail(kind: str, message: str, json_output: bool, hint: Optional[str] = None):
    """Report a failure in the selected output mode and exit 1."""
    if json_output:
        click.echo(json.dumps({"ok": False, "kind": kind, "error": message}, ensure_ascii=False))
    else:
        _print_error(message, hint)
    sys.exit(1)


def _print_success(message: str):
    click.echo(_colorize(f"✅ {message}", "green"))


def _print_step(label: str, status: int, body: Dict[str, Any]):
    click.echo(_colorize(f"{label} status: {status}", "bold"))
    click.echo(f"{label} body: {json.dumps(body, ensure_ascii=False)}")


def _configure_logging(verbosity: int):
    if verbosity <= 0:
        return
    level = logging.DEBUG if verbosity > 1 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                        datefmt="%H:%M:%S")


@click.group()
@click.option("-v", "--verbose", count=True, help="Log progress (-vv for request-level debug).")
@click.option("--base-url", envvar="SUFE_SSO_BASE_URL", default=DEFAULT_BASE_URL,
              show_default=True, help="Scheme and host of the SSO service.")
@click.option("--user-agent", envvar="SUFE_SSO_USER_AGENT", default=None,
              help="Override the User-Agent sent upstream.")
@click.option("--timeout", envvar="SUFE_SSO_TIMEOUT", type=float, default=30,
              show_default=True, help="Per-request timeout in seconds.")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: int, base_url: str, user_agent: Optional[str], timeout: float):
    """Drive the SUFE web SSO SMS login: captcha, SMS code, login.

    Examples:

    \b
      sufe-sso login --username 20220001
      sufe-sso serve --port 3000
    """
    _configure_logging(verbose)
    ctx.obj = SSOClient(base_url=base_url, user_agent=user_agent, timeout=timeout)


@main.command()
@click.option("--username", envvar="SUFE_USERNAME", prompt="SUFE username",
              help="Account to log in (env: SUFE_USERNAME).")
@click.option("--captcha-file", type=click.Path(dir_okay=False, writable=True),
              default="captcha.png", show_default=True, help="Where to save the captcha image.")
@click.option("--json", "json_output", is_flag=True, help="Print step results as JSON.")
@click.pass_obj
def login(client: SSOClient, username: str, captcha_file: str, json_output: bool):
    """Log in interactively: the captcha is saved to a file, codes are prompted for."""
    flow = LoginFlow(client, username)
    try:
        captcha = flow.fetch_captcha()
        with open(captcha_file, "wb") as f:
            f.write(captcha.image)
        click.echo(f"Captcha saved to {captcha_file}", err=json_output)

        vcode = click.prompt("vcode (from image)", err=json_output).strip()
        sms = flow.send_sms(vcode)
        if not json_output:
            _print_step("sms", sms.status, sms.body.to_dict())

        sms_code = click.prompt("sms code", err=json_output).strip()
        result = flow.login(sms_code)
    except LoginError as exc:
        hint = "Check the code and try again." if isinstance(exc, SsoBusinessError) else None
        _fail(exc.kind, exc.message, json_output, hint)
    except OSError as exc:
        _fail("io", f"Cannot write captcha file {captcha_file}: {exc.strerror or exc}", json_output)

    if json_output:
        click.echo(json.dumps({
            "ok": True,
            "sms": sms.to_dict(),
            "login": result.to_dict(),
        }, ensure_ascii=False, indent=2))
    else:
        _print_step("login", result.status, result.body.to_dict())
        _print_success(f"Logged in as {username}")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", type=int, default=3000, show_default=True, help="Port to listen on.")
@click.option("--session-ttl", type=float, default=DEFAULT_SESSION_TTL, show_default=True,
              help="Seconds a browser session stays valid (0 = never expire).")
@click.pass_obj
def serve(client: SSOClient, host: str, port: int, session_ttl: float):
    """Run the browser demo server."""
    store = SessionStore(ttl=session_ttl or None)
    try:
        server = DemoServer(host=host, port=port, client=client, store=store)
    except OSError as exc:
        _fail("io", f"Cannot listen on {host}:{port}: {exc.strerror or exc}", json_output=False)
    click.echo(f"Demo server running at {server.base_url}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("Stopped.")


if __name__ == "__main__":
    main()
