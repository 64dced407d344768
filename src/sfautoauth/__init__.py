"""sfautoauth -- headless Salesforce login that returns OAuth tokens over HTTP.

Salesforce offers no non-interactive way to obtain a refresh token for a
user/password pair. This package drives a headless Chrome through the
standard login page, catches the OAuth redirect on a local callback
listener, exchanges the authorization code, and returns the org ID,
access token, refresh token and SFDX auth URL to the caller.

Typical deployment::

    SF_USERNAME=ci@example.com SF_PASSWORD=... PORT=8080 sf-auto-oauth serve
    curl -X POST localhost:8080/auth -H 'Content-Type: application/json' \\
        -d '{"instanceUrl": "login.salesforce.com"}'

Modules:
    app: Typer CLI and console entry point.
    server: FastAPI application factory.
    flow: The login flow state machine and its admission registry.
    browser: Selenium Chrome session lifecycle.
    oauth: Callback listener and authorization code exchange.
    validation: Credential resolution and login URL checks.
    config: Environment-backed service configuration.
    models: Pydantic models shared across the package.
    exceptions: Exception hierarchy with HTTP status and exit-code mapping.
"""

__version__ = "1.0.0"
