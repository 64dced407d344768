"""Tests for sfautoauth.validation -- precedence, emptiness rules, login URLs."""

from __future__ import annotations

import pytest

from conftest import make_config
from sfautoauth.exceptions import InvalidDomainError, MissingFieldError, ValidationError
from sfautoauth.models import AuthRequest
from sfautoauth.validation import sanitize_login_url, validate_credentials


def _request(**kwargs: str) -> AuthRequest:
    defaults = {
        "username": "ci@example.com",
        "password": "hunter2",
        "instance_url": "login.salesforce.com",
    }
    defaults.update(kwargs)
    return AuthRequest(**defaults)


# ---------------------------------------------------------------------------
# sanitize_login_url
# ---------------------------------------------------------------------------


class TestSanitizeLoginUrl:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("login.salesforce.com", "https://login.salesforce.com"),
            ("test.salesforce.com", "https://test.salesforce.com"),
            ("http://login.salesforce.com", "https://login.salesforce.com"),
            ("https://test.salesforce.com", "https://test.salesforce.com"),
            ("acme.my.salesforce.com", "https://acme.my.salesforce.com"),
            ("https://acme-dev.my.salesforce.com", "https://acme-dev.my.salesforce.com"),
            ("acme--uat.sandbox.my.salesforce.com", "https://acme--uat.sandbox.my.salesforce.com"),
        ],
    )
    def test_accepted(self, value: str, expected: str) -> None:
        check = sanitize_login_url(value)
        assert check.valid
        assert check.url == expected

    @pytest.mark.parametrize(
        "value",
        [
            "evil.example.com",
            "https://login.salesforce.com.evil.com",
            "https://login.salesforce.com/",
            "https://my.salesforce.com",
            "https://acme.my.salesforce.com/path",
            "https://a.b.my.salesforce.com",
            "ftp://login.salesforce.com",
        ],
    )
    def test_rejected(self, value: str) -> None:
        assert not sanitize_login_url(value).valid

    def test_http_rewritten_even_when_invalid(self) -> None:
        assert sanitize_login_url("http://evil.example.com").url == "https://evil.example.com"

    @pytest.mark.parametrize(
        "value",
        ["login.salesforce.com", "http://acme.my.salesforce.com", "evil.example.com"],
    )
    def test_idempotent(self, value: str) -> None:
        first = sanitize_login_url(value)
        second = sanitize_login_url(first.url)
        assert second == first


# ---------------------------------------------------------------------------
# validate_credentials
# ---------------------------------------------------------------------------


class TestPrecedence:
    def test_request_values_used_without_env(self) -> None:
        creds = validate_credentials(make_config(), _request())
        assert creds.username == "ci@example.com"
        assert creds.password == "hunter2"
        assert creds.login_url == "https://login.salesforce.com"

    def test_env_wins_over_request(self) -> None:
        config = make_config(
            username="ops@example.com",
            password="from-env",
            instance_url="test.salesforce.com",
        )
        creds = validate_credentials(config, _request())
        assert creds.username == "ops@example.com"
        assert creds.password == "from-env"
        assert creds.login_url == "https://test.salesforce.com"

    def test_env_variables_are_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SF_USERNAME", "env@example.com")
        monkeypatch.setenv("SF_DOMAIN", "acme.my.salesforce.com")
        creds = validate_credentials(make_config(), _request())
        assert creds.username == "env@example.com"
        assert creds.login_url == "https://acme.my.salesforce.com"

    def test_domain_used_when_instance_url_absent(self) -> None:
        request = AuthRequest(username="u", password="p", domain="test.salesforce.com")
        creds = validate_credentials(make_config(), request)
        assert creds.login_url == "https://test.salesforce.com"

    def test_instance_url_preferred_over_domain(self) -> None:
        request = _request(domain="evil.example.com")
        creds = validate_credentials(make_config(), request)
        assert creds.login_url == "https://login.salesforce.com"

    def test_empty_env_value_still_wins(self) -> None:
        config = make_config(username="")
        with pytest.raises(MissingFieldError, match="Username cannot be empty."):
            validate_credentials(config, _request())


class TestMissingFields:
    @pytest.mark.parametrize(
        "field, message",
        [
            ("username", "Missing username."),
            ("password", "Missing password."),
            ("instance_url", "Missing instance URL."),
        ],
    )
    def test_missing(self, field: str, message: str) -> None:
        data = {"username": "u", "password": "p", "instance_url": "login.salesforce.com"}
        del data[field]
        with pytest.raises(MissingFieldError) as exc_info:
            validate_credentials(make_config(), AuthRequest(**data))
        assert exc_info.value.message == message
        assert exc_info.value.status_code == 400

    def test_username_whitespace_only(self) -> None:
        with pytest.raises(MissingFieldError, match="Username cannot be empty."):
            validate_credentials(make_config(), _request(username="   "))

    def test_username_trimmed(self) -> None:
        creds = validate_credentials(make_config(), _request(username="  ci@example.com\n"))
        assert creds.username == "ci@example.com"

    def test_empty_password(self) -> None:
        with pytest.raises(MissingFieldError, match="Password cannot be empty."):
            validate_credentials(make_config(), _request(password=""))

    def test_whitespace_password_kept_verbatim(self) -> None:
        creds = validate_credentials(make_config(), _request(password="  "))
        assert creds.password == "  "

    def test_instance_url_whitespace_only(self) -> None:
        with pytest.raises(MissingFieldError, match="Instance URL cannot be empty."):
            validate_credentials(make_config(), _request(instance_url=" \t"))

    def test_instance_url_trimmed(self) -> None:
        creds = validate_credentials(make_config(), _request(instance_url=" test.salesforce.com "))
        assert creds.login_url == "https://test.salesforce.com"


class TestInvalidDomain:
    def test_rejected_domain(self) -> None:
        with pytest.raises(InvalidDomainError) as exc_info:
            validate_credentials(make_config(), _request(instance_url="evil.example.com"))
        assert exc_info.value.message == "Invalid instance URL."
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.client_message() == "Invalid instance URL."

    def test_password_not_in_repr(self) -> None:
        creds = validate_credentials(make_config(), _request(password="s3cret"))
        assert "s3cret" not in repr(creds)
