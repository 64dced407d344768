"""Selenium Chrome session lifecycle and element primitives.

A :class:`BrowserSession` wraps one ``webdriver.Chrome`` instance and
exposes the handful of operations the login flow needs: navigate, locate an
element, type into it, click it, and wait for an element with a timeout.

Lifecycle is owned by :func:`acquire` / :func:`release`, and
:func:`browser_session` combines the two into a context manager that quits
the browser exactly once on every exit path. A leaked session keeps a
Chrome process (and its ``/dev/shm`` segment) alive until the container is
restarted.

Element waits return a :class:`WaitOutcome` instead of raising, so that a
timeout -- which the login flow reads as "this element is not coming" --
is never confused with a real driver failure.
"""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from sfautoauth.exceptions import AcquisitionError, ElementNotFoundError, NavigationError
from sfautoauth.models import BrowserOptions

logger = logging.getLogger(__name__)

Locator = tuple[str, str]
"""A Selenium ``(By.<strategy>, value)`` pair, e.g. ``(By.ID, "username")``."""


class WaitStatus(str, enum.Enum):
    FOUND = "found"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class WaitOutcome:
    """Tagged result of :meth:`BrowserSession.wait_for`.

    Exactly one of the three shapes is produced:

    * ``FOUND`` -- ``element`` holds the located element.
    * ``TIMED_OUT`` -- the element did not appear within the window.
    * ``FAILED`` -- the wait itself broke; ``error`` holds the cause.
    """

    status: WaitStatus
    element: Optional[WebElement] = None
    error: Optional[BaseException] = None

    @classmethod
    def found(cls, element: WebElement) -> WaitOutcome:
        return cls(WaitStatus.FOUND, element=element)

    @classmethod
    def timed_out(cls) -> WaitOutcome:
        return cls(WaitStatus.TIMED_OUT)

    @classmethod
    def failed(cls, error: BaseException) -> WaitOutcome:
        return cls(WaitStatus.FAILED, error=error)


def build_chrome_options(options: BrowserOptions) -> Options:
    """Translate :class:`BrowserOptions` into Chrome command-line switches."""
    chrome_options = Options()
    if options.headless:
        chrome_options.add_argument("--headless=new")
    if options.sandbox_disabled:
        chrome_options.add_argument("--no-sandbox")
    if options.shared_memory_usage_disabled:
        chrome_options.add_argument("--disable-dev-shm-usage")
    if options.verbose_logging_suppressed:
        chrome_options.add_experimental_option("excludeSwitches", ["enable-logging"])
    if options.chrome_binary:
        chrome_options.binary_location = options.chrome_binary
    return chrome_options


class BrowserSession:
    """One exclusively owned Chrome automation session.

    Args:
        driver: The started WebDriver.
        element_timeout: Seconds :meth:`locate` polls before giving up.
    """

    def __init__(self, driver: webdriver.Chrome, element_timeout: float = 5.0) -> None:
        self._driver = driver
        self._element_timeout = element_timeout
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def navigate(self, url: str) -> None:
        """Load *url* in the browser.

        Raises:
            NavigationError: If the page cannot be loaded.
        """
        try:
            self._driver.get(url)
        except WebDriverException as exc:
            raise NavigationError(driver_message(exc)) from exc

    def locate(self, locator: Locator) -> WebElement:
        """Return the element matching *locator*, polling briefly for it.

        Raises:
            ElementNotFoundError: If the element does not appear within
                the session's element timeout.
            NavigationError: If the session fails while polling.
        """
        outcome = self.wait_for(locator, self._element_timeout)
        if outcome.element is not None:
            return outcome.element
        if outcome.status is WaitStatus.TIMED_OUT:
            raise ElementNotFoundError(f"Element {locator[1]!r} not found on page")
        raise NavigationError(driver_message(outcome.error)) from outcome.error

    def send_input(self, element: WebElement, text: str) -> None:
        try:
            element.send_keys(text)
        except WebDriverException as exc:
            raise NavigationError(driver_message(exc)) from exc

    def click(self, element: WebElement) -> None:
        try:
            element.click()
        except WebDriverException as exc:
            raise NavigationError(driver_message(exc)) from exc

    def wait_for(self, locator: Locator, timeout: float) -> WaitOutcome:
        """Wait up to *timeout* seconds for *locator* to be present.

        Never raises for driver problems; they are reported as
        :meth:`WaitOutcome.failed`.
        """
        try:
            element = WebDriverWait(self._driver, timeout).until(
                EC.presence_of_element_located(locator)
            )
        except TimeoutException:
            return WaitOutcome.timed_out()
        except WebDriverException as exc:
            return WaitOutcome.failed(exc)
        return WaitOutcome.found(element)

    def quit(self) -> None:
        """Terminate the browser. Safe to call more than once and from any thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._driver.quit()


def driver_message(exc: Optional[BaseException]) -> str:
    """Return Selenium's message without the stack trace it appends."""
    if exc is None:
        return "Browser session failed"
    if isinstance(exc, WebDriverException) and exc.msg:
        return exc.msg
    return str(exc) or exc.__class__.__name__


def acquire(options: BrowserOptions) -> BrowserSession:
    """Start a Chrome session configured by *options*.

    Uses ``options.chromedriver_path`` when set; otherwise Selenium Manager
    locates a matching driver.

    Raises:
        AcquisitionError: If Chrome or chromedriver cannot be started. The
            caller must not retry automatically.
    """
    chrome_options = build_chrome_options(options)
    service = (
        Service(executable_path=options.chromedriver_path)
        if options.chromedriver_path
        else Service()
    )
    try:
        driver = webdriver.Chrome(service=service, options=chrome_options)
    except WebDriverException as exc:
        raise AcquisitionError(f"Failed to start Chrome: {driver_message(exc)}") from exc
    except OSError as exc:
        raise AcquisitionError(f"Failed to start Chrome: {exc}") from exc
    logger.debug("Chrome session started")
    return BrowserSession(driver, element_timeout=options.element_timeout)


def release(session: BrowserSession) -> None:
    """Quit *session*, logging instead of raising on failure."""
    try:
        session.quit()
    except Exception as exc:
        logger.warning("Error quitting Chrome session: %s", exc)
    else:
        logger.debug("Chrome session released")


@contextmanager
def browser_session(options: BrowserOptions) -> Iterator[BrowserSession]:
    """Acquire a session for the duration of a ``with`` block.

    The session is released exactly once when the block exits, whether it
    returns normally or raises.

    Raises:
        AcquisitionError: If the session cannot be started (nothing is
            released in that case).
    """
    session = acquire(options)
    try:
        yield session
    finally:
        release(session)
