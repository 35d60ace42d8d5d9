"""
Tests for the outlook-cli entry point
"""

import io
import os
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from outlook_cli.__main__ import build_parser, main
from outlook_cli.errors import Rejected, UnknownOutcome


@pytest.fixture(autouse=True)
def no_dotenv(tmp_path, monkeypatch):
    """Run from an empty directory and restore anything .env loading sets"""
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ):
        yield


def run_main(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestParser:
    """Tests for argument parsing"""

    def test_global_and_command_options(self):
        parser, _ = build_parser()
        args = parser.parse_args(['--client-id', 'cid', '--json', 'mail', 'forward', 'msg-1',
                                  '-t', 'bob@example.com', '-c', 'FYI'])

        assert args.client_id == 'cid'
        assert args.json is True
        assert args.command == 'mail'
        assert args.subcommand == 'forward'
        assert args.to == 'bob@example.com'
        assert args.comment == 'FYI'
        assert args.token is None
        assert args.mutating is True

    def test_read_commands_not_mutating(self):
        parser, _ = build_parser()
        args = parser.parse_args(['mail', 'inbox', '-n', '5'])

        assert args.limit == 5
        assert not getattr(args, 'mutating', False)

    def test_no_command(self):
        assert run_main([]) == 1

    def test_group_without_subcommand(self, capsys):
        assert run_main(['calendar']) == 1
        assert 'accept' in capsys.readouterr().out


class TestExitCodes:
    """Tests for error to exit code mapping"""

    def test_missing_client_id(self, capsys):
        assert run_main(['mail', 'inbox']) == 2
        assert 'client_id' in capsys.readouterr().err

    def test_missing_refresh_token(self, capsys):
        assert run_main(['--client-id', 'cid', 'mail', 'inbox']) == 2
        assert 'refresh token' in capsys.readouterr().err

    def test_invalid_grant(self, capsys):
        error = urllib.error.HTTPError('https://login.test/token', 400, 'error', None,
                                       io.BytesIO(b'{"error": "invalid_grant", '
                                                  b'"error_description": "Token revoked"}'))

        with patch('outlook_cli.auth.make_oauth_request', side_effect=error):
            code = run_main(['--client-id', 'cid', '--token', 'bad', 'auth', 'check'])

        err = capsys.readouterr().err
        assert code == 1
        assert 'Token revoked' in err
        assert 'outlook-cli auth login' in err

    def test_rejected(self, capsys):
        client = MagicMock()
        client.execute.side_effect = Rejected('ErrorItemNotFound', 'The item was not found.', 404)

        with patch('outlook_cli.mail.get_client', return_value=client):
            code = run_main(['mail', 'get', 'missing'])

        assert code == 1
        assert 'Error: ErrorItemNotFound: The item was not found.' in capsys.readouterr().err

    def test_unknown_outcome(self, capsys):
        client = MagicMock()
        client.execute.side_effect = UnknownOutcome('send mail to a@example.com: connection lost')

        with patch('outlook_cli.mail.get_client', return_value=client):
            code = run_main(['mail', 'send', 'a@example.com', '-s', 'Hi', '-b', 'Hello'])

        err = capsys.readouterr().err
        assert code == 1
        assert 'connection lost' in err
        assert 'Check before retrying' in err

    def test_interrupted_mutation(self, capsys):
        client = MagicMock()
        client.execute.side_effect = KeyboardInterrupt

        with patch('outlook_cli.mail.get_client', return_value=client):
            code = run_main(['mail', 'delete', 'msg-1'])

        assert code == 130
        assert "outcome of 'mail delete' is unknown" in capsys.readouterr().err

    def test_interrupted_read(self, capsys):
        client = MagicMock()
        client.execute.side_effect = KeyboardInterrupt

        with patch('outlook_cli.mail.get_client', return_value=client):
            code = run_main(['mail', 'inbox'])

        err = capsys.readouterr().err
        assert code == 130
        assert 'Interrupted' in err
        assert 'unknown' not in err


class TestDotenv:
    """Tests for .env loading"""

    def test_credentials_from_dotenv(self, tmp_path, oauth, capsys):
        (tmp_path / '.env').write_text(
            "OUTLOOK_CLIENT_ID=dotenv-client\nOUTLOOK_REFRESH_TOKEN=dotenv-token\n"
        )

        main(['auth', 'check'])

        assert "Client ID: dotenv-client" in capsys.readouterr().out
        assert oauth.issued[0]['refresh_token'] == 'dotenv-token'

    def test_environment_wins_over_dotenv(self, tmp_path, oauth, monkeypatch, capsys):
        (tmp_path / '.env').write_text(
            "OUTLOOK_CLIENT_ID=dotenv-client\nOUTLOOK_REFRESH_TOKEN=dotenv-token\n"
        )
        monkeypatch.setenv('OUTLOOK_CLIENT_ID', 'real-client')

        main(['auth', 'check'])

        assert "Client ID: real-client" in capsys.readouterr().out
