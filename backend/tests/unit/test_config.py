"""Tests for Settings, the keychain settings source and credential lookup."""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS, SERVICE_NAME, get_credential

_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "DEMO_MODE",
    "DEFAULT_EXCHANGE_RATE",
    "LOG_LEVEL",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestDefaults:
    def test_cache_and_rate_defaults(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value=None),
        ):
            s = Settings(_env_file=None)
        assert s.PRICE_CACHE_TTL_HOURS == 6
        assert s.RATE_CACHE_TTL_HOURS == 6
        assert s.DEFAULT_EXCHANGE_RATE == 0.92
        assert s.HISTORY_SYNC_DELAY_SECONDS == 2.0
        assert s.DEMO_MODE is False
        assert s.COINGECKO_API_KEY == ""

    def test_non_positive_default_rate_rejected(self):
        with pytest.raises(ValidationError, match="DEFAULT_EXCHANGE_RATE"):
            Settings(_env_file=None, DEFAULT_EXCHANGE_RATE=0)

    def test_demo_mode_from_env(self):
        env = _clean_env()
        env["DEMO_MODE"] = "true"
        with patch.dict(os.environ, env, clear=True):
            assert Settings(_env_file=None).DEMO_MODE is True


class TestKeychainSettingsSource:
    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "cg-demo-key" if key == "COINGECKO_API_KEY" else None
            )
            s = Settings(_env_file=None)
            assert s.COINGECKO_API_KEY == "cg-demo-key"

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["COINGECKO_API_KEY"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value="from-keychain"),
        ):
            assert Settings(_env_file=None).COINGECKO_API_KEY == "from-keychain"

    def test_env_fallback_when_keychain_empty(self):
        env = _clean_env()
        env["COINGECKO_API_KEY"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            assert Settings(_env_file=None).COINGECKO_API_KEY == "from-env"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = "should-not-be-used"
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./fold.db"
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys <= CREDENTIAL_KEYS

    def test_source_is_second_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        assert isinstance(sources[1], KeychainSettingsSource)


class TestGetCredential:
    def test_returns_value(self):
        mock_keyring = MagicMock()
        mock_keyring.get_password.return_value = "secret123"
        with patch.dict(sys.modules, {"keyring": mock_keyring}):
            assert get_credential("COINGECKO_API_KEY") == "secret123"
        mock_keyring.get_password.assert_called_once_with(SERVICE_NAME, "COINGECKO_API_KEY")

    def test_returns_none_when_keyring_not_installed(self):
        with patch.dict(sys.modules, {"keyring": None}):
            assert get_credential("COINGECKO_API_KEY") is None

    def test_returns_none_on_keyring_exception(self):
        mock_keyring = MagicMock()
        mock_keyring.get_password.side_effect = Exception("keyring error")
        with patch.dict(sys.modules, {"keyring": mock_keyring}):
            assert get_credential("COINGECKO_API_KEY") is None
