"""Canonical Pydantic models shared across sfautoauth modules.

The models fall into three groups:

**Request/response models** -- the JSON shapes of the HTTP surface:
    :class:`AuthRequest`, :class:`AuthPayload`, :class:`SuccessResponse`,
    and :class:`FailureResponse`.

**Flow models** -- values produced and consumed by the login flow:
    :class:`Credentials`, :class:`CapturedFields`.

**Option models** -- tuning knobs derived from
:class:`~sfautoauth.config.ServiceConfig`:
    :class:`BrowserOptions`, :class:`FlowOptions`, :class:`OAuthSettings`.

All models use Pydantic v2. Wire-facing models use camelCase aliases
(``instanceUrl``, ``orgId``, ``sfdxAuthUrl``) so the JSON contract matches
what existing callers send and expect.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- HTTP surface ---


class AuthRequest(BaseModel):
    """Fields a caller may supply in a JSON body or query string.

    Every field is optional here; presence and emptiness are checked by
    :func:`~sfautoauth.validation.validate_credentials` after the
    environment overrides have been applied.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: Optional[str] = None
    password: Optional[str] = None
    instance_url: Optional[str] = Field(default=None, alias="instanceUrl")
    domain: Optional[str] = None


class AuthPayload(BaseModel):
    """The ``auth`` object of a successful response."""

    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(alias="orgId")
    access_token: str = Field(alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    sfdx_auth_url: str = Field(alias="sfdxAuthUrl")


class SuccessResponse(BaseModel):
    success: bool = True
    auth: AuthPayload


class FailureResponse(BaseModel):
    success: bool = False
    error: str


# --- Flow values ---


class Credentials(BaseModel):
    """Validated login credentials for a single request.

    ``password`` is kept exactly as supplied; ``username`` is trimmed and
    ``login_url`` is a normalised ``https://`` URL. Instances are never
    persisted.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)
    login_url: str


class CapturedFields(BaseModel):
    """Token fields produced by a completed OAuth exchange.

    Example::

        fields = CapturedFields(
            org_id="00D000000000001",
            access_token="00D!AQ...",
            refresh_token="5Aep...",
            instance_url="https://acme.my.salesforce.com",
            sfdx_auth_url="force://PlatformCLI::5Aep...@acme.my.salesforce.com",
        )
    """

    model_config = ConfigDict(frozen=True)

    org_id: str
    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    instance_url: str
    sfdx_auth_url: str = Field(repr=False)

    def to_payload(self) -> AuthPayload:
        return AuthPayload(
            org_id=self.org_id,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            sfdx_auth_url=self.sfdx_auth_url,
        )


# --- Options ---


class BrowserOptions(BaseModel):
    """Chrome launch options for one automation session.

    The four switches default to the values required in a container with
    no display and a small ``/dev/shm``.
    """

    headless: bool = True
    sandbox_disabled: bool = True
    shared_memory_usage_disabled: bool = True
    verbose_logging_suppressed: bool = True
    element_timeout: float = Field(
        default=5.0, description="Seconds to poll for an element before giving up"
    )
    chrome_binary: Optional[str] = None
    chromedriver_path: Optional[str] = None


class FlowOptions(BaseModel):
    """Stage switches and wait windows for :class:`~sfautoauth.flow.LoginFlow`."""

    check_login_error: bool = Field(
        default=True, description="Wait for the login error indicator after submit"
    )
    login_error_wait: float = Field(default=4.0, ge=0)
    approval_wait: float = Field(default=4.0, ge=0)
    capture_timeout: float = Field(default=120.0, gt=0)
    request_timeout: float = Field(default=180.0, gt=0)


class OAuthSettings(BaseModel):
    """Connected App parameters for the authorization code exchange.

    The defaults are those of the Salesforce CLI's global Connected App,
    whose registered callback is ``http://localhost:1717/OauthRedirect``.
    """

    client_id: str = "PlatformCLI"
    client_secret: str = Field(default="", repr=False)
    callback_host: str = "localhost"
    callback_port: int = 1717
    callback_path: str = "/OauthRedirect"
    token_timeout: float = 30.0

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.callback_host}:{self.callback_port}{self.callback_path}"
