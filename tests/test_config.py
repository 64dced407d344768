"""Tests for sfautoauth.config -- environment loading and option projection."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_config
from sfautoauth.config import load_config
from sfautoauth.exceptions import InternalError


class TestDefaults:
    def test_defaults(self) -> None:
        config = make_config()
        assert config.username is None
        assert config.password is None
        assert config.instance_url is None
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.check_login_error is True
        assert config.login_error_wait == 4.0
        assert config.approval_wait == 4.0
        assert config.max_concurrent_logins == 1
        assert config.client_id == "PlatformCLI"
        assert config.callback_port == 1717

    def test_password_hidden_from_repr(self) -> None:
        config = make_config(password="s3cret")
        assert "s3cret" not in repr(config)


class TestEnvironment:
    def test_reads_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SF_USERNAME", "ops@example.com")
        monkeypatch.setenv("SF_PASSWORD", "pw")
        monkeypatch.setenv("SF_INSTANCE_URL", "test.salesforce.com")
        config = make_config()
        assert config.username == "ops@example.com"
        assert config.password == "pw"
        assert config.instance_url == "test.salesforce.com"

    def test_sf_domain_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SF_DOMAIN", "acme.my.salesforce.com")
        assert make_config().instance_url == "acme.my.salesforce.com"

    def test_instance_url_preferred_over_domain(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SF_INSTANCE_URL", "login.salesforce.com")
        monkeypatch.setenv("SF_DOMAIN", "acme.my.salesforce.com")
        assert make_config().instance_url == "login.salesforce.com"

    def test_port_and_tuning(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "9090")
        monkeypatch.setenv("SF_CHECK_LOGIN_ERROR", "false")
        monkeypatch.setenv("SF_APPROVAL_WAIT", "2.5")
        monkeypatch.setenv("SF_HEADLESS", "0")
        config = make_config()
        assert config.port == 9090
        assert config.check_login_error is False
        assert config.approval_wait == 2.5
        assert config.headless is False

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / ".env").write_text("SF_USERNAME=dotenv@example.com\nPORT=7000\n")
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.username == "dotenv@example.com"
        assert config.port == 7000


class TestLoadConfig:
    def test_overrides_win(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PORT", "9090")
        config = load_config(port=7070, host="127.0.0.1")
        assert config.port == 7070
        assert config.host == "127.0.0.1"

    def test_none_overrides_ignored(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PORT", "9090")
        assert load_config(port=None).port == 9090

    def test_unparseable_value(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PORT", "not-a-number")
        with pytest.raises(InternalError, match="Invalid configuration"):
            load_config()

    def test_zero_concurrency_rejected(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SF_MAX_CONCURRENT_LOGINS", "0")
        with pytest.raises(InternalError):
            load_config()


class TestProjections:
    def test_flow_options_override(self) -> None:
        config = make_config(check_login_error=True)
        assert config.flow_options().check_login_error is True
        assert config.flow_options(False).check_login_error is False

    def test_browser_options(self) -> None:
        config = make_config(chrome_binary="/opt/chrome", element_timeout=2.0)
        options = config.browser_options()
        assert options.chrome_binary == "/opt/chrome"
        assert options.element_timeout == 2.0
        assert options.sandbox_disabled is True

    def test_oauth_settings(self) -> None:
        config = make_config(client_id="3MVG9", callback_port=1818)
        oauth = config.oauth_settings()
        assert oauth.client_id == "3MVG9"
        assert oauth.redirect_uri == "http://localhost:1818/OauthRedirect"

    @pytest.mark.parametrize(
        "level, expected",
        [("info", "INFO"), ("DEBUG", "DEBUG"), ("warn", "WARNING"), ("verbose", "INFO")],
    )
    def test_python_log_level(self, level: str, expected: str) -> None:
        assert make_config(log_level=level).python_log_level == expected
