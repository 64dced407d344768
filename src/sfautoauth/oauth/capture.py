"""Local OAuth callback listener and authorization code exchange.

:func:`begin` arms a listener on the Connected App's registered callback
address and returns an :class:`AuthorizationSession` holding:

* ``authorization_url`` -- where the browser must be sent,
* ``pending_capture`` -- a :class:`concurrent.futures.Future` that resolves
  with :class:`~sfautoauth.models.CapturedFields` once Salesforce redirects
  back and the code has been exchanged for tokens.

The socket is bound and the serving thread started before :func:`begin`
returns, so the listener is always in place before the browser navigates.
The flow (PKCE S256, ``state`` check, code exchange over ``httpx``) follows
:rfc:`6749` section 4.1 and :rfc:`7636`.

Callers must call :meth:`AuthorizationSession.close` once they are done
with the session, whatever the outcome, to release the port.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from sfautoauth.exceptions import CaptureFailedError
from sfautoauth.models import CapturedFields, OAuthSettings

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "refresh_token api web"

_POLL_INTERVAL = 0.5

# Seconds a callback connection may sit idle before its handler thread gives up
_HANDLER_TIMEOUT = 5.0


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def build_authorization_url(
    login_url: str,
    oauth: OAuthSettings,
    state: str,
    code_challenge: str,
) -> str:
    """Return the ``/services/oauth2/authorize`` URL for *login_url*."""
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": oauth.client_id,
        "redirect_uri": oauth.redirect_uri,
        "state": state,
        "prompt": "login",
        "scope": DEFAULT_SCOPE,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{login_url}/services/oauth2/authorize?{urlencode(params)}"


def build_sfdx_auth_url(oauth: OAuthSettings, refresh_token: str, instance_url: str) -> str:
    """Return the ``force://`` URL accepted by ``sf org login sfdx-url``."""
    host = instance_url
    for prefix in ("https://", "http://"):
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    return f"force://{oauth.client_id}:{oauth.client_secret}:{refresh_token}@{host}"


def org_id_from_identity_url(identity_url: str) -> str:
    """Extract the org ID from an identity URL such as
    ``https://login.salesforce.com/id/00D.../005...``.

    Raises:
        CaptureFailedError: If the URL does not have the expected shape.
    """
    segments = [seg for seg in urlparse(identity_url).path.split("/") if seg]
    if len(segments) < 3 or segments[-3] != "id":
        raise CaptureFailedError(f"Unexpected identity URL in token response: {identity_url}")
    return segments[-2]


def exchange_code(
    login_url: str,
    oauth: OAuthSettings,
    code: str,
    code_verifier: str,
) -> CapturedFields:
    """Exchange an authorization code for tokens at ``/services/oauth2/token``.

    Args:
        login_url: The normalised login URL the flow started from.
        oauth: Connected App parameters.
        code: The authorization code from the callback.
        code_verifier: The PKCE verifier matching the challenge sent in
            the authorization URL.

    Returns:
        The captured token fields.

    Raises:
        CaptureFailedError: On HTTP errors or an incomplete token response.
    """
    data: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": oauth.redirect_uri,
        "client_id": oauth.client_id,
        "code_verifier": code_verifier,
    }
    if oauth.client_secret:
        data["client_secret"] = oauth.client_secret

    try:
        response = httpx.post(
            f"{login_url}/services/oauth2/token",
            data=data,
            headers={"Accept": "application/json"},
            timeout=oauth.token_timeout,
        )
        response.raise_for_status()
        token_data: dict[str, Any] = response.json()
    except httpx.HTTPStatusError as exc:
        raise CaptureFailedError(
            f"Token exchange failed with status {exc.response.status_code}: "
            f"{exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise CaptureFailedError(f"Token exchange failed: {exc}") from exc
    except ValueError as exc:
        raise CaptureFailedError(f"Token response is not valid JSON: {exc}") from exc

    for key in ("access_token", "instance_url", "id"):
        if key not in token_data:
            raise CaptureFailedError(f"Token response missing '{key}' field")

    refresh_token: Optional[str] = token_data.get("refresh_token")
    if not refresh_token:
        raise CaptureFailedError("Token response missing 'refresh_token' field")

    instance_url: str = token_data["instance_url"]
    return CapturedFields(
        org_id=org_id_from_identity_url(token_data["id"]),
        access_token=token_data["access_token"],
        refresh_token=refresh_token,
        instance_url=instance_url,
        sfdx_auth_url=build_sfdx_auth_url(oauth, refresh_token, instance_url),
    )


class AuthorizationSession:
    """One in-flight authorization code exchange.

    Created by :func:`begin`; not meant to be constructed directly.

    Attributes:
        authorization_url: URL the browser must navigate to.
        pending_capture: Resolves with :class:`CapturedFields`, or fails
            with :class:`~sfautoauth.exceptions.CaptureFailedError`.
    """

    def __init__(
        self,
        login_url: str,
        oauth: OAuthSettings,
        state: str,
        code_verifier: str,
        code_challenge: str,
    ) -> None:
        self.login_url = login_url
        self.oauth = oauth
        self.authorization_url = build_authorization_url(
            login_url, oauth, state, code_challenge
        )
        self.pending_capture: Future[CapturedFields] = Future()
        self._state = state
        self._code_verifier = code_verifier
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._close_lock = threading.Lock()
        self._settle_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Listener
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        """Bind the callback socket and start accepting in a daemon thread.

        Each connection is handled on its own daemon thread, so a browser
        preconnect that never sends a request line cannot stall the accept
        loop or :meth:`close`.
        """
        session = self

        class CallbackHandler(BaseHTTPRequestHandler):
            timeout = _HANDLER_TIMEOUT

            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != session.oauth.callback_path:
                    self._reply(404, "Not found.")
                    return
                status, body = session._handle_callback(parse_qs(parsed.query))
                self._reply(status, body)

            def _reply(self, status: int, body: str) -> None:
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(
                    f"<html><body><h2>{body}</h2></body></html>".encode("utf-8")
                )

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("Callback listener: " + format, *args)

        address = (self.oauth.callback_host, self.oauth.callback_port)
        try:
            server = ThreadingHTTPServer(address, CallbackHandler)
        except OSError as exc:
            raise CaptureFailedError(
                f"Cannot listen on OAuth callback port {self.oauth.callback_port}: {exc}"
            ) from exc
        server.daemon_threads = True
        server.timeout = _POLL_INTERVAL
        self._server = server

        def serve() -> None:
            while not self._stop.is_set():
                server.handle_request()

        self._thread = threading.Thread(
            target=serve, name="oauth-callback-listener", daemon=True
        )
        self._thread.start()
        logger.debug("OAuth callback listener armed on %s", self.oauth.redirect_uri)

    def _handle_callback(self, params: dict[str, list[str]]) -> tuple[int, str]:
        """Process one redirect; returns the status and message for the browser."""
        if self.pending_capture.done():
            return 200, "Authentication already processed. You can close this window."

        if params.get("state", [""])[0] != self._state:
            self._fail(CaptureFailedError("OAuth callback state does not match"))
            return 400, "Authorization failed: invalid state."

        if "error" in params:
            error = params["error"][0]
            description = params.get("error_description", [""])[0]
            message = f"OAuth authorization failed: {error}"
            if description:
                message += f" - {description}"
            self._fail(CaptureFailedError(message))
            return 400, f"Authorization failed: {error}"

        if "code" not in params:
            self._fail(CaptureFailedError("No authorization code received from callback"))
            return 400, "No authorization code received."

        try:
            fields = exchange_code(
                self.login_url, self.oauth, params["code"][0], self._code_verifier
            )
        except CaptureFailedError as exc:
            self._fail(exc)
            return 500, "Token exchange failed."

        with self._settle_lock:
            if not self.pending_capture.done():
                self.pending_capture.set_result(fields)
        return 200, "Authentication successful. You can close this window."

    def _fail(self, exc: CaptureFailedError) -> None:
        logger.warning("OAuth capture failed: %s", exc)
        with self._settle_lock:
            if not self.pending_capture.done():
                self.pending_capture.set_exception(exc)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def wait(self, timeout: float) -> CapturedFields:
        """Block until the capture settles or *timeout* seconds pass.

        Raises:
            CaptureFailedError: If the exchange failed, the listener was
                closed first, or the timeout expired.
        """
        try:
            return self.pending_capture.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise CaptureFailedError(
                f"No OAuth response within {timeout:g} seconds"
            ) from exc

    def close(self) -> None:
        """Stop the listener and release the port. Idempotent.

        A capture that has not settled yet is failed with
        :class:`~sfautoauth.exceptions.CaptureFailedError`.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=_POLL_INTERVAL * 2)
        if self._server is not None:
            self._server.server_close()
        with self._settle_lock:
            if not self.pending_capture.done():
                self.pending_capture.set_exception(
                    CaptureFailedError(
                        "Callback listener closed before the OAuth response arrived"
                    )
                )
        logger.debug("OAuth callback listener closed")

    def __enter__(self) -> AuthorizationSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def begin(login_url: str, oauth: OAuthSettings) -> AuthorizationSession:
    """Arm the callback listener and prepare the authorization URL.

    Args:
        login_url: A normalised login URL (see
            :func:`~sfautoauth.validation.sanitize_login_url`).
        oauth: Connected App parameters.

    Returns:
        An armed :class:`AuthorizationSession`.

    Raises:
        CaptureFailedError: If the callback port cannot be bound.
    """
    code_verifier, code_challenge = generate_pkce_pair()
    session = AuthorizationSession(
        login_url=login_url,
        oauth=oauth,
        state=secrets.token_urlsafe(32),
        code_verifier=code_verifier,
        code_challenge=code_challenge,
    )
    session._arm()
    return session
