"""Typer application and console entry point for sf-auto-oauth.

Two commands are registered:

* ``serve`` -- run the HTTP service (:mod:`sfautoauth.server`) under
  uvicorn, aborting in-flight logins on SIGINT or SIGTERM.
* ``login`` -- run a single login flow from the terminal and print the
  captured fields.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, invokes the Typer app and
turns :class:`~sfautoauth.exceptions.SfAutoAuthError` into the matching
exit code. Unexpected exceptions are written to a crash log.

See Also:
    :mod:`sfautoauth.config`: Environment-backed configuration.
    :mod:`sfautoauth.output`: Output formatting initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import tempfile
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from sfautoauth import __version__
from sfautoauth.exit_codes import EXIT_GENERIC_FAILURE

logger = logging.getLogger(__name__)

BANNER = """sf-auto-oauth
Copyright (C) 2023 Aurel Hudec
This program comes with ABSOLUTELY NO WARRANTY.
This is free software, and you are welcome to redistribute it under certain conditions; see LICENSE"""

app = typer.Typer(
    name="sf-auto-oauth",
    help="Log in to Salesforce with a headless browser and capture OAuth tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"sf-auto-oauth {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~sfautoauth.output.OutputManager` and
    stores ``verbose`` in ``ctx.obj`` for the sub-commands.
    """
    from sfautoauth.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet))

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (env: HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port (env: PORT)."),
) -> None:
    """Run the HTTP service."""
    from sfautoauth.config import load_config
    from sfautoauth.log import configure_logging
    from sfautoauth.server import run_server

    config = load_config(host=host, port=port)
    configure_logging(config.python_log_level)
    for line in BANNER.splitlines():
        logger.info(line)

    logger.info("Listening on port %d", config.port)
    run_server(config)


@app.command("login")
def login_command(
    ctx: typer.Context,
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="Salesforce username (env SF_USERNAME wins)."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", help="Password; prompted for when omitted on a TTY."
    ),
    instance_url: Optional[str] = typer.Option(
        None,
        "--instance-url",
        "-i",
        help="login.salesforce.com, test.salesforce.com or a My Domain.",
    ),
    check_login_error: Optional[bool] = typer.Option(
        None,
        "--check-login-error/--no-check-login-error",
        help="Wait for the login error message after submitting the form.",
    ),
) -> None:
    """Log in once and print the captured OAuth fields."""
    from sfautoauth.config import load_config
    from sfautoauth.flow import LoginFlow
    from sfautoauth.log import configure_logging
    from sfautoauth.models import AuthRequest
    from sfautoauth.output import info, print_auth, success
    from sfautoauth.validation import validate_credentials

    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    config = load_config()
    configure_logging("DEBUG" if verbose else "WARNING")

    if password is None and config.password is None and sys.stdin.isatty():
        password = typer.prompt("Password", hide_input=True)

    credentials = validate_credentials(
        config,
        AuthRequest(username=username, password=password, instance_url=instance_url),
    )
    info(f"Logging in to {credentials.login_url} as {credentials.username}...")

    flow = LoginFlow(
        credentials,
        options=config.flow_options(check_login_error),
        browser_options=config.browser_options(),
        oauth=config.oauth_settings(),
    )
    fields = flow.run()

    print_auth(fields.to_payload().model_dump(by_alias=True))
    success(f"Authenticated against org {fields.org_id}")


def _setup_signal_handlers() -> None:
    """Log SIGINT/SIGTERM and exit cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        logger.info("Received %s", signal.Signals(signum).name)
        logger.info("Exiting")
        sys.exit(130 if signum == signal.SIGINT else 143)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to a temp file and return its path."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = Path(tempfile.gettempdir()) / f"sf-auto-oauth-crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``sf-auto-oauth`` console script.

    :class:`~sfautoauth.exceptions.SfAutoAuthError` instances cause a clean
    exit with the error's ``exit_code``. All other exceptions produce a
    crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from sfautoauth.exceptions import SfAutoAuthError
        from sfautoauth.output import error

        if isinstance(exc, SfAutoAuthError):
            error(exc.message)
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
