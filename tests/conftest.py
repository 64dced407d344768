"""Shared test fixtures for sfautoauth.

Provides an isolated environment (no operator credentials leaking in from
the developer's shell), a baseline :class:`ServiceConfig`, and fake browser
and callback-listener factories that let the login flow run end to end
without Chrome or a socket.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import pytest

from sfautoauth.browser import WaitOutcome
from sfautoauth.config import ServiceConfig
from sfautoauth.exceptions import CaptureFailedError
from sfautoauth.models import BrowserOptions, CapturedFields, OAuthSettings
from sfautoauth.output import reset_output


_ENV_VARS = (
    "SF_USERNAME",
    "SF_PASSWORD",
    "SF_INSTANCE_URL",
    "SF_DOMAIN",
    "SF_CHECK_LOGIN_ERROR",
    "SF_LOGIN_ERROR_WAIT",
    "SF_APPROVAL_WAIT",
    "SF_ELEMENT_TIMEOUT",
    "SF_CAPTURE_TIMEOUT",
    "SF_REQUEST_TIMEOUT",
    "SF_MAX_CONCURRENT_LOGINS",
    "SF_CLIENT_ID",
    "SF_CLIENT_SECRET",
    "SF_OAUTH_PORT",
    "SF_HEADLESS",
    "CHROME_BINARY",
    "CHROMEDRIVER_PATH",
    "HOST",
    "PORT",
    "LOG_LEVEL",
)


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager after every test.

    The OutputManager caches sys.stdout/sys.stderr at creation time, and
    CliRunner swaps those streams for the duration of an invoke.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every variable :class:`ServiceConfig` reads."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def make_config(**kwargs: Any) -> ServiceConfig:
    """Build a ServiceConfig that ignores any ``.env`` file on disk."""
    return ServiceConfig(_env_file=None, **kwargs)


@pytest.fixture
def config() -> ServiceConfig:
    return make_config(login_error_wait=0.01, approval_wait=0.01, capture_timeout=1.0)


CAPTURED = CapturedFields(
    org_id="00D000000000001EAA",
    access_token="00D000000000001!AQ.token",
    refresh_token="5Aep861refresh",
    instance_url="https://acme.my.salesforce.com",
    sfdx_auth_url="force://PlatformCLI::5Aep861refresh@acme.my.salesforce.com",
)


# ---------------------------------------------------------------------------
# Fake browser session
# ---------------------------------------------------------------------------


class FakeElement:
    def __init__(self, element_id: str, log: list[tuple[str, ...]]) -> None:
        self.element_id = element_id
        self._log = log

    def send_keys(self, text: str) -> None:
        self._log.append(("send_keys", self.element_id, text))

    def click(self) -> None:
        self._log.append(("click", self.element_id))


class FakeSession:
    """Stands in for :class:`~sfautoauth.browser.BrowserSession`.

    Args:
        present: Element ids that :meth:`wait_for` reports as found.
        failing: Element ids whose wait reports a driver failure.
        failure: The exception reported for those failed waits.
    """

    def __init__(
        self,
        present: Optional[set[str]] = None,
        failing: Optional[set[str]] = None,
        failure: Optional[Exception] = None,
    ) -> None:
        self.present = present if present is not None else set()
        self.failing = failing if failing is not None else set()
        self.failure = failure or RuntimeError("chrome not reachable")
        self.log: list[tuple[str, ...]] = []
        self.quit_calls = 0

    def navigate(self, url: str) -> None:
        self.log.append(("navigate", url))

    def locate(self, locator: tuple[str, str]) -> FakeElement:
        return FakeElement(locator[1], self.log)

    def send_input(self, element: FakeElement, text: str) -> None:
        element.send_keys(text)

    def click(self, element: FakeElement) -> None:
        element.click()

    def wait_for(self, locator: tuple[str, str], timeout: float) -> WaitOutcome:
        element_id = locator[1]
        self.log.append(("wait_for", element_id))
        if element_id in self.failing:
            return WaitOutcome.failed(self.failure)
        if element_id in self.present:
            return WaitOutcome.found(FakeElement(element_id, self.log))  # type: ignore[arg-type]
        return WaitOutcome.timed_out()

    def quit(self) -> None:
        self.quit_calls += 1


class FakeSessionFactory:
    """Context-manager factory recording acquisitions and releases."""

    def __init__(self, session: Optional[FakeSession] = None, error: Optional[Exception] = None) -> None:
        self.session = session or FakeSession()
        self.error = error
        self.acquired = 0
        self.released = 0

    @contextmanager
    def __call__(self, options: BrowserOptions) -> Iterator[FakeSession]:
        if self.error is not None:
            raise self.error
        self.acquired += 1
        try:
            yield self.session
        finally:
            self.released += 1


# ---------------------------------------------------------------------------
# Fake callback listener
# ---------------------------------------------------------------------------


class FakeCapture:
    def __init__(self, result: Optional[CapturedFields] = None, error: Optional[Exception] = None) -> None:
        self.authorization_url = "https://login.salesforce.com/services/oauth2/authorize?state=x"
        self.result = result
        self.error = error
        self.waited_with: Optional[float] = None
        self.closed = 0

    def wait(self, timeout: float) -> CapturedFields:
        self.waited_with = timeout
        if self.error is not None:
            raise self.error
        if self.result is None:
            raise CaptureFailedError(f"No OAuth response within {timeout:g} seconds")
        return self.result

    def close(self) -> None:
        self.closed += 1

    def __enter__(self) -> FakeCapture:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BlockingCapture(FakeCapture):
    """Blocks in :meth:`wait` until :meth:`close` is called, then fails."""

    def __init__(self) -> None:
        super().__init__(result=CAPTURED)
        self.waiting = threading.Event()
        self._released = threading.Event()

    def wait(self, timeout: float) -> CapturedFields:
        self.waiting.set()
        self._released.wait(timeout)
        raise CaptureFailedError("Callback listener closed before the OAuth response arrived")

    def close(self) -> None:
        super().close()
        self._released.set()


class FakeCaptureFactory:
    def __init__(self, capture: Optional[FakeCapture] = None, error: Optional[Exception] = None) -> None:
        self.capture = capture or FakeCapture(result=CAPTURED)
        self.error = error
        self.calls: list[tuple[str, OAuthSettings]] = []

    def __call__(self, login_url: str, oauth: OAuthSettings) -> FakeCapture:
        self.calls.append((login_url, oauth))
        if self.error is not None:
            raise self.error
        return self.capture


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def capture_factory() -> FakeCaptureFactory:
    return FakeCaptureFactory()
