"""
Tests for configuration loading and outlook-cli config commands
"""

import stat
from unittest.mock import patch

import pytest

from conftest import make_args
from outlook_cli import config_cmd
from outlook_cli.common import (
    BASE_SCOPES, CONTACTS_SCOPES, DEFAULT_SCOPES, MAIL_SCOPES, load_config,
)
from outlook_cli.errors import ConfigError


class TestLoadConfig:
    """Tests for load_config() precedence and validation"""

    def test_requires_client_id(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config()
        assert 'client_id' in str(exc_info.value)

    def test_defaults(self):
        config = load_config(client_id='cid')

        assert config['client_id'] == 'cid'
        assert config['refresh_token'] is None
        assert config['tenant'] == 'common'
        assert config['scopes'] == DEFAULT_SCOPES
        assert config['timeout'] == 30.0
        assert config['retry_attempts'] == 3
        assert config['retry_base_delay'] == 1.0
        assert config['retry_max_delay'] == 30.0

    def test_from_file(self, temp_config_file):
        config = load_config(config_file=temp_config_file)

        assert config['client_id'] == 'test-client-id'
        assert config['tenant'] == 'test-tenant'
        assert MAIL_SCOPES[0] in config['scopes']
        assert CONTACTS_SCOPES[0] not in config['scopes']
        assert all(scope in config['scopes'] for scope in BASE_SCOPES)

    def test_env_overrides_file(self, temp_config_file, monkeypatch):
        monkeypatch.setenv('OUTLOOK_CLIENT_ID', 'env-client')
        monkeypatch.setenv('OUTLOOK_TENANT', 'env-tenant')
        monkeypatch.setenv('OUTLOOK_REFRESH_TOKEN', 'env-token')

        config = load_config(config_file=temp_config_file)

        assert config['client_id'] == 'env-client'
        assert config['tenant'] == 'env-tenant'
        assert config['refresh_token'] == 'env-token'

    def test_explicit_overrides_env(self, monkeypatch):
        monkeypatch.setenv('OUTLOOK_CLIENT_ID', 'env-client')
        monkeypatch.setenv('OUTLOOK_REFRESH_TOKEN', 'env-token')

        config = load_config(client_id='arg-client', refresh_token='arg-token', tenant='arg-tenant')

        assert config['client_id'] == 'arg-client'
        assert config['refresh_token'] == 'arg-token'
        assert config['tenant'] == 'arg-tenant'

    def test_scopes_from_env(self, monkeypatch):
        monkeypatch.setenv('OUTLOOK_SCOPES', 'Mail.Read, offline_access,')

        config = load_config(client_id='cid')

        assert config['scopes'] == ['Mail.Read', 'offline_access']

    def test_custom_scopes_in_file(self, temp_config_file):
        temp_config_file.write_text(
            "[auth]\nclient_id = cid\n\n[scopes]\ncustom = Mail.Read,User.Read\n"
        )

        assert load_config(config_file=temp_config_file)['scopes'] == ['Mail.Read', 'User.Read']

    def test_refresh_token_in_file_ignored(self, temp_config_file):
        temp_config_file.write_text("[auth]\nclient_id = cid\nrefresh_token = leaked\n")

        assert load_config(config_file=temp_config_file)['refresh_token'] is None

    def test_retry_and_network_settings(self, temp_config_file):
        temp_config_file.write_text(
            "[auth]\nclient_id = cid\n\n"
            "[retry]\nattempts = 5\nbase_delay = 0.5\nmax_delay = 8\n\n"
            "[network]\ntimeout = 10\n"
        )

        config = load_config(config_file=temp_config_file)

        assert config['retry_attempts'] == 5
        assert config['retry_base_delay'] == 0.5
        assert config['retry_max_delay'] == 8.0
        assert config['timeout'] == 10.0

    def test_invalid_retry_value(self, temp_config_file):
        temp_config_file.write_text("[auth]\nclient_id = cid\n\n[retry]\nattempts = many\n")

        with pytest.raises(ConfigError):
            load_config(config_file=temp_config_file)

    def test_zero_attempts_rejected(self, temp_config_file):
        temp_config_file.write_text("[auth]\nclient_id = cid\n\n[retry]\nattempts = 0\n")

        with pytest.raises(ConfigError):
            load_config(config_file=temp_config_file)

    def test_default_config_file_used(self, mock_config):
        assert load_config()['client_id'] == 'test-client-id'


class TestConfigList:
    """Tests for 'outlook-cli config list' command"""

    def test_list_missing_file(self, capsys):
        config_cmd.cmd_list(make_args())

        assert "Config file is empty" in capsys.readouterr().out

    def test_list_populated_config(self, mock_config, capsys):
        config_cmd.cmd_list(make_args())

        out = capsys.readouterr().out
        assert "[auth]" in out
        assert "client_id = test-client-id" in out
        assert "[scopes]" in out


class TestConfigGet:
    """Tests for 'outlook-cli config get' command"""

    def test_get_existing_value(self, mock_config, capsys):
        config_cmd.cmd_get(make_args(key='auth.client_id'))

        assert capsys.readouterr().out.strip() == "test-client-id"

    def test_get_nonexistent_option(self, mock_config):
        with pytest.raises(SystemExit):
            config_cmd.cmd_get(make_args(key='auth.nonexistent'))

    def test_get_invalid_key_format(self, mock_config):
        with pytest.raises(SystemExit):
            config_cmd.cmd_get(make_args(key='invalid_key'))


class TestConfigSet:
    """Tests for 'outlook-cli config set' command"""

    def test_set_new_value(self, mock_config, capsys):
        config_cmd.cmd_set(make_args(key='retry.attempts', value='5'))

        assert "Set retry.attempts = 5" in capsys.readouterr().out
        assert load_config()['retry_attempts'] == 5

    def test_set_creates_private_file(self, tmp_path):
        config_file = tmp_path / "new" / "config"
        with patch('outlook_cli.config_cmd.CONFIG_FILE', config_file):
            config_cmd.cmd_set(make_args(key='auth.client_id', value='my-app'))

        assert "client_id = my-app" in config_file.read_text()
        assert stat.S_IMODE(config_file.stat().st_mode) == 0o600

    def test_set_refuses_refresh_token(self, mock_config, capsys):
        with pytest.raises(SystemExit):
            config_cmd.cmd_set(make_args(key='auth.refresh_token', value='secret'))

        assert "secret" not in mock_config.read_text()
        assert "Refusing" in capsys.readouterr().err

    def test_set_unknown_key(self, mock_config):
        with pytest.raises(SystemExit):
            config_cmd.cmd_set(make_args(key='auth.colour', value='blue'))


class TestConfigUnset:
    """Tests for 'outlook-cli config unset' command"""

    def test_unset_value(self, mock_config, capsys):
        config_cmd.cmd_unset(make_args(key='auth.tenant'))

        assert "Unset auth.tenant" in capsys.readouterr().out
        assert "tenant" not in mock_config.read_text()

    def test_unset_removes_empty_section(self, mock_config):
        config_cmd.cmd_unset(make_args(key='auth.tenant'))
        config_cmd.cmd_unset(make_args(key='auth.client_id'))

        assert "[auth]" not in mock_config.read_text()

    def test_unset_missing(self, mock_config):
        with pytest.raises(SystemExit):
            config_cmd.cmd_unset(make_args(key='retry.attempts'))


class TestConfigPath:
    """Tests for 'outlook-cli config path' command"""

    def test_path(self, mock_config, capsys):
        config_cmd.cmd_path(make_args())

        assert capsys.readouterr().out.strip() == str(mock_config)
