"""
Pytest configuration and shared fixtures for outlook-cli tests
"""

import argparse
import json
from configparser import ConfigParser
from unittest.mock import MagicMock, patch

import pytest

from outlook_cli.auth import Credentials, TokenManager
from outlook_cli.client import GraphClient, PageIterator, RetryPolicy

ENV_VARS = ('OUTLOOK_REFRESH_TOKEN', 'OUTLOOK_CLIENT_ID', 'OUTLOOK_TENANT', 'OUTLOOK_SCOPES')


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the real environment and ~/.config"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    missing = tmp_path / "no-such-config"
    with patch('outlook_cli.common.CONFIG_FILE', missing), \
         patch('outlook_cli.config_cmd.CONFIG_FILE', missing):
        yield


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory for testing"""
    config_dir = tmp_path / ".config" / "outlook-cli"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def temp_config_file(temp_config_dir):
    """Create a temporary config file with test settings"""
    config_file = temp_config_dir / "config"
    parser = ConfigParser()

    parser.add_section('auth')
    parser.set('auth', 'client_id', 'test-client-id')
    parser.set('auth', 'tenant', 'test-tenant')

    parser.add_section('scopes')
    parser.set('scopes', 'mail', 'true')
    parser.set('scopes', 'calendar', 'true')
    parser.set('scopes', 'contacts', 'false')

    with open(config_file, 'w') as f:
        parser.write(f)

    return config_file


@pytest.fixture
def mock_config(temp_config_file):
    """Point load_config() and the config commands at the temp config file"""
    with patch('outlook_cli.common.CONFIG_FILE', temp_config_file), \
         patch('outlook_cli.config_cmd.CONFIG_FILE', temp_config_file):
        yield temp_config_file


def make_args(**kwargs):
    """argparse.Namespace with the global options every command reads"""
    values = {'client_id': None, 'token': None, 'tenant': None, 'json': False, 'verbose': False}
    values.update(kwargs)
    return argparse.Namespace(**values)


def page_of(items, next_link=None):
    """A one-page PageIterator, as GraphClient.execute() returns for listings"""
    body = {'value': list(items)}
    if next_link:
        body['@odata.nextLink'] = next_link
    return PageIterator(MagicMock(), body)


@pytest.fixture
def mock_client():
    """Patch get_client in every command module with one shared MagicMock client"""
    client = MagicMock()
    with patch('outlook_cli.mail.get_client', return_value=client), \
         patch('outlook_cli.drafts.get_client', return_value=client), \
         patch('outlook_cli.calendar.get_client', return_value=client), \
         patch('outlook_cli.contacts.get_client', return_value=client):
        yield client


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTransport:
    """Stands in for send_request: records calls, replays queued responses

    Each queued item is either a (status, headers, body) tuple or an exception
    instance to raise. A body given as dict is JSON-encoded.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def __call__(self, url, method='GET', headers=None, data=None, timeout=None):
        self.calls.append({'url': url, 'method': method, 'headers': dict(headers or {}),
                           'data': data, 'timeout': timeout})
        if not self.responses:
            raise AssertionError(f"unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        status, headers, body = response
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode()
        return status, headers, body

    @property
    def authorizations(self):
        return [call['headers'].get('Authorization') for call in self.calls]


def json_response(body, status=200, headers=None):
    return (status, headers or {}, body)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oauth():
    """Patch the token endpoint; each exchange issues access-token-1, -2, ..."""
    issued = []

    def exchange(tenant, endpoint, data, timeout=None):
        issued.append(data)
        return {'access_token': f'access-token-{len(issued)}', 'expires_in': 3600}

    with patch('outlook_cli.auth.make_oauth_request', side_effect=exchange) as mock_oauth:
        mock_oauth.issued = issued
        yield mock_oauth


@pytest.fixture
def token_manager(oauth, clock):
    credentials = Credentials(refresh_token='test-refresh-token', client_id='test-client-id')
    return TokenManager(credentials, tenant='test-tenant', clock=clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def graph_client(token_manager, transport, sleeps):
    """GraphClient wired to the fake transport; sleeps are recorded, not slept"""
    return GraphClient(token_manager, base_url='https://graph.test/v1.0',
                       retry_policy=RetryPolicy(attempts=3, base_delay=1.0, max_delay=30.0),
                       transport=transport, sleep=sleeps.append)


@pytest.fixture
def sample_email():
    """Sample email data from Graph API"""
    return {
        'id': 'test-email-id-123',
        'subject': 'Test Email Subject',
        'from': {
            'emailAddress': {
                'name': 'John Doe',
                'address': 'john.doe@example.com'
            }
        },
        'toRecipients': [
            {'emailAddress': {'address': 'me@example.com'}}
        ],
        'receivedDateTime': '2025-01-15T10:30:00Z',
        'bodyPreview': 'This is a test email body preview',
        'body': {
            'contentType': 'html',
            'content': '<p>Hello <b>there</b></p>'
        },
        'isRead': False,
        'hasAttachments': False
    }


@pytest.fixture
def sample_calendar_event():
    """Sample calendar event data from Graph API"""
    return {
        'id': 'test-event-id-123',
        'subject': 'Team Meeting',
        'start': {
            'dateTime': '2025-01-15T14:00:00.0000000',
            'timeZone': 'UTC'
        },
        'end': {
            'dateTime': '2025-01-15T15:00:00.0000000',
            'timeZone': 'UTC'
        },
        'location': {
            'displayName': 'Conference Room A'
        },
        'organizer': {
            'emailAddress': {'name': 'Jane Roe', 'address': 'jane@example.com'}
        },
        'attendees': []
    }


@pytest.fixture
def sample_contact():
    """Sample contact data from Graph API"""
    return {
        'id': 'test-contact-id-123',
        'displayName': 'John Doe',
        'givenName': 'John',
        'surname': 'Doe',
        'emailAddresses': [
            {
                'address': 'john.doe@example.com',
                'name': 'John Doe'
            }
        ],
        'mobilePhone': '+1 555 0100'
    }
