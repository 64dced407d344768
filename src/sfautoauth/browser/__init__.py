"""Browser automation: one Selenium Chrome session per login flow.

Typical usage::

    from sfautoauth.browser import browser_session

    with browser_session(options) as session:
        session.navigate(url)
        outcome = session.wait_for(locator, timeout=4)
"""

from sfautoauth.browser.session import (
    BrowserSession,
    Locator,
    WaitOutcome,
    WaitStatus,
    acquire,
    browser_session,
    driver_message,
    release,
)

__all__ = [
    "BrowserSession",
    "Locator",
    "WaitOutcome",
    "WaitStatus",
    "acquire",
    "browser_session",
    "driver_message",
    "release",
]
