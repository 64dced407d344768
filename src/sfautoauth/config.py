"""Service configuration loaded once at process start.

:class:`ServiceConfig` reads the process environment (and a ``.env`` file in
the working directory, when present) exactly once, in :func:`load_config`.
The resulting object is passed explicitly to the HTTP application, the CLI
and the login flow; no other module reads ``os.environ``.

Two groups of settings live here:

* **Credential overrides** -- ``SF_USERNAME``, ``SF_PASSWORD`` and
  ``SF_INSTANCE_URL`` / ``SF_DOMAIN``. When set, they win over anything a
  caller sends (see :mod:`sfautoauth.validation`).
* **Tuning** -- listen address, log level, wait windows, Connected App
  parameters and Chrome paths. :meth:`ServiceConfig.flow_options`,
  :meth:`ServiceConfig.browser_options` and
  :meth:`ServiceConfig.oauth_settings` project them onto the option models
  consumed by each component.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from sfautoauth.exceptions import InternalError
from sfautoauth.models import BrowserOptions, FlowOptions, OAuthSettings

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ServiceConfig(BaseSettings):
    """Process-wide settings for the sf-auto-oauth service.

    Field names are the Python attribute names; the environment variable
    each one reads is given by its ``validation_alias``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Credential overrides
    username: Optional[str] = Field(default=None, validation_alias="SF_USERNAME")
    password: Optional[str] = Field(
        default=None, validation_alias="SF_PASSWORD", repr=False
    )
    instance_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("SF_INSTANCE_URL", "SF_DOMAIN")
    )

    # HTTP service
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")

    # Login flow
    check_login_error: bool = Field(default=True, validation_alias="SF_CHECK_LOGIN_ERROR")
    login_error_wait: float = Field(default=4.0, validation_alias="SF_LOGIN_ERROR_WAIT")
    approval_wait: float = Field(default=4.0, validation_alias="SF_APPROVAL_WAIT")
    element_timeout: float = Field(default=5.0, validation_alias="SF_ELEMENT_TIMEOUT")
    capture_timeout: float = Field(default=120.0, validation_alias="SF_CAPTURE_TIMEOUT")
    request_timeout: float = Field(default=180.0, validation_alias="SF_REQUEST_TIMEOUT")
    max_concurrent_logins: int = Field(
        default=1, ge=1, validation_alias="SF_MAX_CONCURRENT_LOGINS"
    )

    # Connected App
    client_id: str = Field(default="PlatformCLI", validation_alias="SF_CLIENT_ID")
    client_secret: str = Field(default="", validation_alias="SF_CLIENT_SECRET", repr=False)
    callback_port: int = Field(default=1717, validation_alias="SF_OAUTH_PORT")

    # Chrome
    headless: bool = Field(default=True, validation_alias="SF_HEADLESS")
    chrome_binary: Optional[str] = Field(default=None, validation_alias="CHROME_BINARY")
    chromedriver_path: Optional[str] = Field(
        default=None, validation_alias="CHROMEDRIVER_PATH"
    )

    def flow_options(self, check_login_error: Optional[bool] = None) -> FlowOptions:
        """Return the :class:`FlowOptions` for one flow.

        Args:
            check_login_error: Per-route override of the login error
                pre-check. ``None`` keeps the configured value.
        """
        return FlowOptions(
            check_login_error=(
                self.check_login_error if check_login_error is None else check_login_error
            ),
            login_error_wait=self.login_error_wait,
            approval_wait=self.approval_wait,
            capture_timeout=self.capture_timeout,
            request_timeout=self.request_timeout,
        )

    def browser_options(self) -> BrowserOptions:
        return BrowserOptions(
            headless=self.headless,
            element_timeout=self.element_timeout,
            chrome_binary=self.chrome_binary,
            chromedriver_path=self.chromedriver_path,
        )

    def oauth_settings(self) -> OAuthSettings:
        return OAuthSettings(
            client_id=self.client_id,
            client_secret=self.client_secret,
            callback_port=self.callback_port,
        )

    @property
    def python_log_level(self) -> str:
        """``log_level`` as a :mod:`logging` level name (``"INFO"`` etc.)."""
        level = self.log_level.strip().lower()
        if level == "warn":
            level = "warning"
        if level not in _LOG_LEVELS:
            return "INFO"
        return level.upper()


def load_config(**overrides: object) -> ServiceConfig:
    """Build the :class:`ServiceConfig` from the environment.

    Args:
        **overrides: Field values that take precedence over the
            environment (used by CLI flags such as ``--port``).

    Returns:
        The loaded configuration.

    Raises:
        InternalError: If an environment variable has an unparseable value.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ServiceConfig(**values)
    except PydanticValidationError as exc:
        raise InternalError(f"Invalid configuration: {exc}") from exc
