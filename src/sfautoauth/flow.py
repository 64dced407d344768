"""Login flow orchestration.

:class:`LoginFlow` drives one Salesforce login from start to finish::

    IDLE -> SESSION_ACQUIRED -> LISTENER_ARMED -> FORM_SUBMITTED
         -> [LOGIN_CHECKED] -> APPROVAL_PENDING | APPROVAL_NOT_NEEDED
         -> CAPTURE_AWAITED -> SUCCEEDED | FAILED

Two stages after the form submit are optional and bounded by short waits:

* the **login error check** (``FlowOptions.check_login_error``) waits for
  the ``#error`` element; finding it means the credentials were rejected;
* the **approval step** waits for the Connected App's ``#oaapprove``
  button and clicks it when it shows up.

In both cases a timeout means "the element is not coming" and the flow
moves on. Only a failed wait (the browser session broke) aborts the flow.

The callback listener is always armed before the browser navigates, and
both the listener and the browser are released on every exit path.

:class:`FlowRegistry` admits flows through a bounded semaphore -- the
Connected App callback is a single fixed port -- and keeps track of the
running ones so that they can be aborted on shutdown.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import threading
import time
from typing import Callable, ContextManager, Optional

from selenium.webdriver.common.by import By

from sfautoauth.browser import (
    BrowserSession,
    Locator,
    WaitStatus,
    browser_session,
    driver_message,
)
from sfautoauth.exceptions import (
    AcquisitionError,
    CredentialRejectedError,
    InternalError,
    NavigationError,
    SfAutoAuthError,
)
from sfautoauth.models import (
    BrowserOptions,
    CapturedFields,
    Credentials,
    FlowOptions,
    OAuthSettings,
)
from sfautoauth.oauth import AuthorizationSession, begin

logger = logging.getLogger(__name__)

USERNAME_FIELD: Locator = (By.ID, "username")
PASSWORD_FIELD: Locator = (By.ID, "password")
LOGIN_BUTTON: Locator = (By.ID, "Login")
LOGIN_ERROR: Locator = (By.ID, "error")
APPROVE_BUTTON: Locator = (By.ID, "oaapprove")

SessionFactory = Callable[[BrowserOptions], ContextManager[BrowserSession]]
CaptureFactory = Callable[[str, OAuthSettings], AuthorizationSession]


class FlowState(str, enum.Enum):
    IDLE = "idle"
    SESSION_ACQUIRED = "session_acquired"
    LISTENER_ARMED = "listener_armed"
    FORM_SUBMITTED = "form_submitted"
    LOGIN_CHECKED = "login_checked"
    APPROVAL_PENDING = "approval_pending"
    APPROVAL_NOT_NEEDED = "approval_not_needed"
    CAPTURE_AWAITED = "capture_awaited"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Deadline:
    """A fixed point in monotonic time that bounds every wait of a request."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    def bound(self, seconds: float) -> float:
        """Return *seconds*, shortened to what is left before the deadline."""
        return min(seconds, self.remaining())


class LoginFlow:
    """Run one browser login and capture the resulting OAuth tokens.

    Args:
        credentials: Validated credentials for this request.
        options: Stage switches and wait windows.
        browser_options: Chrome launch options.
        oauth: Connected App parameters.
        session_factory: Context manager yielding a browser session.
            Defaults to :func:`~sfautoauth.browser.browser_session`.
        capture_factory: Arms the callback listener. Defaults to
            :func:`~sfautoauth.oauth.begin`.
    """

    def __init__(
        self,
        credentials: Credentials,
        options: FlowOptions,
        browser_options: BrowserOptions,
        oauth: OAuthSettings,
        session_factory: SessionFactory = browser_session,
        capture_factory: CaptureFactory = begin,
    ) -> None:
        self.credentials = credentials
        self.options = options
        self.browser_options = browser_options
        self.oauth = oauth
        self._session_factory = session_factory
        self._capture_factory = capture_factory
        self._session: Optional[BrowserSession] = None
        self._capture: Optional[AuthorizationSession] = None
        self.state = FlowState.IDLE
        self.history: list[FlowState] = [FlowState.IDLE]

    def _enter(self, state: FlowState) -> None:
        logger.debug("Login flow: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(self, deadline: Optional[Deadline] = None) -> CapturedFields:
        """Execute the flow.

        Args:
            deadline: Overall bound for the request. A new one of
                ``options.request_timeout`` seconds is started when omitted.

        Returns:
            The captured token fields.

        Raises:
            AcquisitionError: If Chrome cannot be started.
            CredentialRejectedError: If the login page reports an error.
            AutomationError: If a page or element step fails.
            CaptureFailedError: If the OAuth response never arrives or the
                token exchange fails.
            InternalError: For anything unclassified.
        """
        deadline = deadline or Deadline(self.options.request_timeout)
        logger.info("Authenticating using Selenium and Chrome...")
        try:
            with self._session_factory(self.browser_options) as session:
                self._session = session
                self._enter(FlowState.SESSION_ACQUIRED)
                with self._capture_factory(self.credentials.login_url, self.oauth) as capture:
                    self._capture = capture
                    self._enter(FlowState.LISTENER_ARMED)
                    fields = self._drive(session, capture, deadline)
        except SfAutoAuthError:
            self._enter(FlowState.FAILED)
            raise
        except Exception as exc:
            self._enter(FlowState.FAILED)
            logger.exception("Unexpected error during login flow")
            raise InternalError(str(exc) or exc.__class__.__name__) from exc
        finally:
            self._session = None
            self._capture = None

        self._enter(FlowState.SUCCEEDED)
        logger.info("Successfully authenticated against org %s", fields.org_id)
        return fields

    def _drive(
        self,
        session: BrowserSession,
        capture: AuthorizationSession,
        deadline: Deadline,
    ) -> CapturedFields:
        self._submit_form(session, capture.authorization_url)
        self._enter(FlowState.FORM_SUBMITTED)

        if self.options.check_login_error:
            self._check_login_error(session, deadline)
            self._enter(FlowState.LOGIN_CHECKED)

        self._handle_approval(session, deadline)

        self._enter(FlowState.CAPTURE_AWAITED)
        return capture.wait(deadline.bound(self.options.capture_timeout))

    def _submit_form(self, session: BrowserSession, authorization_url: str) -> None:
        session.navigate(authorization_url)
        session.send_input(session.locate(USERNAME_FIELD), self.credentials.username)
        session.send_input(session.locate(PASSWORD_FIELD), self.credentials.password)
        session.click(session.locate(LOGIN_BUTTON))

    def _check_login_error(self, session: BrowserSession, deadline: Deadline) -> None:
        wait = deadline.bound(self.options.login_error_wait)
        outcome = session.wait_for(LOGIN_ERROR, wait)
        if outcome.status is WaitStatus.FOUND:
            logger.info("Error message found, login failed.")
            raise CredentialRejectedError("Please check your username and password.")
        if outcome.status is WaitStatus.FAILED:
            raise NavigationError(driver_message(outcome.error)) from outcome.error
        logger.info("No error message after %g seconds, assuming login successful.", wait)

    def _handle_approval(self, session: BrowserSession, deadline: Deadline) -> None:
        wait = deadline.bound(self.options.approval_wait)
        outcome = session.wait_for(APPROVE_BUTTON, wait)
        if outcome.element is not None:
            self._enter(FlowState.APPROVAL_PENDING)
            logger.info("Redirected to Reject/Approve page, approving.")
            session.click(outcome.element)
            return
        if outcome.status is WaitStatus.FAILED:
            raise NavigationError(driver_message(outcome.error)) from outcome.error
        self._enter(FlowState.APPROVAL_NOT_NEEDED)
        logger.info('No "Approve" button after %g seconds, assuming no approval required.', wait)

    def abort(self) -> None:
        """Tear down the listener and the browser from another thread.

        The running :meth:`run` call then fails at its next step and goes
        through its normal cleanup.
        """
        capture, session = self._capture, self._session
        if capture is not None:
            capture.close()
        if session is not None:
            with contextlib.suppress(Exception):
                session.quit()


class FlowRegistry:
    """Admission control and bookkeeping for concurrently running flows.

    Args:
        max_concurrent: How many flows may hold a browser and the callback
            port at the same time.
    """

    def __init__(self, max_concurrent: int = 1) -> None:
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._active: set[LoginFlow] = set()
        self._closed = False

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._active)

    def run(self, flow: LoginFlow) -> CapturedFields:
        """Run *flow* once a slot is free, within its request deadline.

        Raises:
            AcquisitionError: If no slot frees up before the deadline, or
                the registry is shutting down.
        """
        deadline = Deadline(flow.options.request_timeout)
        if not self._slots.acquire(timeout=deadline.remaining()):
            raise AcquisitionError("Timed out waiting for a free browser session slot")
        try:
            with self._lock:
                if self._closed:
                    raise AcquisitionError("Service is shutting down")
                self._active.add(flow)
            try:
                return flow.run(deadline)
            finally:
                with self._lock:
                    self._active.discard(flow)
        finally:
            self._slots.release()

    def abort_all(self) -> None:
        """Refuse new flows and abort every running one."""
        with self._lock:
            self._closed = True
            flows = list(self._active)
        for flow in flows:
            logger.info("Aborting in-flight login flow")
            flow.abort()
