"""Credential resolution and login URL validation.

:func:`validate_credentials` is the only entry point used by the request
handler. It resolves each field with a fixed precedence -- operator
configuration first, then the request -- so a caller can never override a
credential the operator pinned in the environment.

:func:`sanitize_login_url` normalises the login domain to ``https://`` and
accepts only the two canonical Salesforce login hosts or a My Domain
hostname (``<name>.my.salesforce.com`` or
``<name>.sandbox.my.salesforce.com``).
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple, Optional

from sfautoauth.config import ServiceConfig
from sfautoauth.exceptions import InvalidDomainError, MissingFieldError
from sfautoauth.models import AuthRequest, Credentials

logger = logging.getLogger(__name__)

CANONICAL_LOGIN_URLS = ("https://test.salesforce.com", "https://login.salesforce.com")

_MY_DOMAIN_RE = re.compile(r"^https://[\w-]+\.my\.salesforce\.com$")
_SANDBOX_MY_DOMAIN_RE = re.compile(r"^https://[\w-]+\.sandbox\.my\.salesforce\.com$")


class LoginUrlCheck(NamedTuple):
    """Outcome of :func:`sanitize_login_url`."""

    valid: bool
    url: str


def sanitize_login_url(value: str) -> LoginUrlCheck:
    """Normalise *value* to an ``https://`` URL and check its shape.

    ``http://`` is rewritten to ``https://`` and a bare hostname gets
    ``https://`` prepended. The result is valid when it is one of
    :data:`CANONICAL_LOGIN_URLS` or matches either My Domain pattern.
    Applying the function to its own output returns the same URL.

    Args:
        value: The instance URL or domain as supplied (already trimmed).

    Returns:
        A :class:`LoginUrlCheck` with the normalised URL.
    """
    if value.startswith("http://"):
        url = "https://" + value[len("http://"):]
    elif not value.startswith("https://"):
        url = "https://" + value
    else:
        url = value

    is_standard = url in CANONICAL_LOGIN_URLS
    is_my_domain = bool(_MY_DOMAIN_RE.match(url) or _SANDBOX_MY_DOMAIN_RE.match(url))
    return LoginUrlCheck(valid=is_standard or is_my_domain, url=url)


def _resolve(
    label: str,
    env_value: Optional[str],
    request_value: Optional[str],
) -> str:
    """Pick the operator value if set, otherwise the request value."""
    if env_value is not None:
        logger.info("Got %s from environment variable", label)
        return env_value
    if request_value is not None:
        logger.info("Got %s from request", label)
        return request_value
    logger.info("%s not found in environment variable or request.", label.capitalize())
    raise MissingFieldError(f"Missing {label}.")


def validate_credentials(config: ServiceConfig, request: AuthRequest) -> Credentials:
    """Resolve and validate the three credential fields.

    Args:
        config: Startup configuration holding the environment overrides.
        request: Fields supplied by the caller.

    Returns:
        The validated :class:`~sfautoauth.models.Credentials`.

    Raises:
        MissingFieldError: If a field is absent, or empty after the
            field's normalisation (the password is never trimmed).
        InvalidDomainError: If the instance URL is not an accepted
            Salesforce login host.
    """
    username = _resolve("username", config.username, request.username).strip()
    if not username:
        logger.info("Username is only whitespace or empty.")
        raise MissingFieldError("Username cannot be empty.")

    password = _resolve("password", config.password, request.password)
    if len(password) == 0:
        logger.info("Password is empty.")
        raise MissingFieldError("Password cannot be empty.")

    instance_url = _resolve(
        "instance URL",
        config.instance_url,
        request.instance_url if request.instance_url is not None else request.domain,
    ).strip()
    if not instance_url:
        logger.info("Instance URL is empty.")
        raise MissingFieldError("Instance URL cannot be empty.")

    check = sanitize_login_url(instance_url)
    if not check.valid:
        logger.warning("Received invalid instance URL %s", instance_url)
        raise InvalidDomainError("Invalid instance URL.")

    return Credentials(username=username, password=password, login_url=check.url)
