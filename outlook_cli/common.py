"""
Common utilities for Outlook CLI

Shared constants, configuration loading, raw HTTP helpers and formatting
functions used across all commands.
"""

import json
import os
import re
import urllib.request
import urllib.parse
import urllib.error
from configparser import ConfigParser
from datetime import datetime
from pathlib import Path

from .errors import ConfigError

# Graph API base URL
GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

# Identity provider
LOGIN_BASE = "https://login.microsoftonline.com"
DEFAULT_TENANT = "common"

# Default configuration paths
CONFIG_DIR = Path.home() / ".config" / "outlook-cli"
CONFIG_FILE = Path(os.environ.get('OUTLOOK_CONFIG_FILE', CONFIG_DIR / "config")).expanduser()

# Environment variables
ENV_REFRESH_TOKEN = 'OUTLOOK_REFRESH_TOKEN'
ENV_CLIENT_ID = 'OUTLOOK_CLIENT_ID'
ENV_TENANT = 'OUTLOOK_TENANT'
ENV_SCOPES = 'OUTLOOK_SCOPES'

# Scopes for mail, calendar and contacts
MAIL_SCOPES = [
    "https://graph.microsoft.com/Mail.ReadWrite",
    "https://graph.microsoft.com/Mail.Send",
]
CALENDAR_SCOPES = [
    "https://graph.microsoft.com/Calendars.ReadWrite",
]
CONTACTS_SCOPES = [
    "https://graph.microsoft.com/Contacts.ReadWrite",
]
BASE_SCOPES = [
    "https://graph.microsoft.com/User.Read",
    "offline_access",
]
DEFAULT_SCOPES = MAIL_SCOPES + CALENDAR_SCOPES + CONTACTS_SCOPES + BASE_SCOPES

# Network and retry defaults
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_MAX_DELAY = 30.0

# Largest $top Graph accepts for a listing
MAX_PAGE_SIZE = 1000


def load_config(client_id=None, refresh_token=None, tenant=None, config_file=None):
    """
    Load configuration from explicit values, environment variables and config file.

    Priority: Explicit arguments > Environment variables > Config file > Defaults

    Environment variables:
    - OUTLOOK_REFRESH_TOKEN: OAuth refresh token
    - OUTLOOK_CLIENT_ID: Azure AD application ID
    - OUTLOOK_TENANT: Azure AD tenant ID (default "common")
    - OUTLOOK_SCOPES: Comma-separated list of scopes

    Config file (~/.config/outlook-cli/config):
    [auth]
    client_id = your-client-id
    tenant = common

    [scopes]
    # Enable/disable command groups
    mail = true
    calendar = true
    contacts = true

    # Or specify custom scopes
    # custom = Mail.Read,Contacts.Read,User.Read,offline_access

    [retry]
    attempts = 3
    base_delay = 1.0
    max_delay = 30.0

    [network]
    timeout = 30

    The refresh token is never read from the config file.

    Returns:
        dict with keys: client_id, refresh_token, tenant, scopes, timeout,
        retry_attempts, retry_base_delay, retry_max_delay

    Raises:
        ConfigError: if no client id is configured or a value is invalid
    """
    config = {
        'client_id': None,
        'refresh_token': None,
        'tenant': DEFAULT_TENANT,
        'scopes': DEFAULT_SCOPES.copy(),
        'timeout': DEFAULT_TIMEOUT,
        'retry_attempts': DEFAULT_RETRY_ATTEMPTS,
        'retry_base_delay': DEFAULT_RETRY_BASE_DELAY,
        'retry_max_delay': DEFAULT_RETRY_MAX_DELAY,
    }

    config_file = Path(config_file) if config_file else CONFIG_FILE

    # Load from config file if it exists
    if config_file.exists():
        parser = ConfigParser()
        parser.read(config_file)

        try:
            _apply_config_file(config, parser)
        except ValueError as e:
            raise ConfigError(f"Invalid value in {config_file}: {e}") from e

    # Override with environment variables
    if os.environ.get(ENV_CLIENT_ID):
        config['client_id'] = os.environ[ENV_CLIENT_ID]
    if os.environ.get(ENV_REFRESH_TOKEN):
        config['refresh_token'] = os.environ[ENV_REFRESH_TOKEN]
    if os.environ.get(ENV_TENANT):
        config['tenant'] = os.environ[ENV_TENANT]
    if os.environ.get(ENV_SCOPES):
        config['scopes'] = [s.strip() for s in os.environ[ENV_SCOPES].split(',') if s.strip()]

    # Explicit values win
    if client_id:
        config['client_id'] = client_id
    if refresh_token:
        config['refresh_token'] = refresh_token
    if tenant:
        config['tenant'] = tenant

    if not config['client_id']:
        raise ConfigError(
            "OAuth client_id not configured. Pass --client-id, set "
            f"{ENV_CLIENT_ID}, or add to {config_file}:\n"
            "  [auth]\n"
            "  client_id = your-azure-ad-app-id"
        )

    return config


def _apply_config_file(config, parser):
    """Copy recognised settings from a parsed config file into config"""
    # Auth section
    if parser.has_option('auth', 'client_id'):
        config['client_id'] = parser.get('auth', 'client_id')
    if parser.has_option('auth', 'tenant'):
        config['tenant'] = parser.get('auth', 'tenant')

    # Scopes section
    if parser.has_section('scopes'):
        if parser.has_option('scopes', 'custom'):
            custom_scopes = parser.get('scopes', 'custom')
            config['scopes'] = [s.strip() for s in custom_scopes.split(',') if s.strip()]
        else:
            scopes = []
            if parser.getboolean('scopes', 'mail', fallback=True):
                scopes.extend(MAIL_SCOPES)
            if parser.getboolean('scopes', 'calendar', fallback=True):
                scopes.extend(CALENDAR_SCOPES)
            if parser.getboolean('scopes', 'contacts', fallback=True):
                scopes.extend(CONTACTS_SCOPES)
            # Always include User.Read and offline_access
            config['scopes'] = scopes + BASE_SCOPES

    # Retry section
    if parser.has_section('retry'):
        config['retry_attempts'] = parser.getint('retry', 'attempts', fallback=config['retry_attempts'])
        config['retry_base_delay'] = parser.getfloat('retry', 'base_delay', fallback=config['retry_base_delay'])
        config['retry_max_delay'] = parser.getfloat('retry', 'max_delay', fallback=config['retry_max_delay'])
        if config['retry_attempts'] < 1:
            raise ValueError("retry.attempts must be at least 1")

    # Network section
    if parser.has_option('network', 'timeout'):
        config['timeout'] = parser.getfloat('network', 'timeout')


def send_request(url, method="GET", headers=None, data=None, timeout=DEFAULT_TIMEOUT):
    """
    Send a single HTTP request and return the raw result

    HTTP error statuses are returned like any other response; classifying
    them is up to the caller.

    Args:
        url: Absolute URL
        method: HTTP method
        headers: Dict of request headers
        data: Request body bytes or None
        timeout: Socket timeout in seconds

    Returns:
        Tuple of (status, headers, body) where headers has lowercase keys

    Raises:
        urllib.error.URLError: the connection could not be established
        OSError, http.client.HTTPException: the connection failed while
            waiting for or reading the response
    """
    req = urllib.request.Request(url, data=data, headers=headers or {}, method=method)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            body = response.read()
            return response.status, _lower_headers(response.headers), body
    except urllib.error.HTTPError as e:
        body = e.read()
        return e.code, _lower_headers(e.headers), body


def _lower_headers(headers):
    if not headers:
        return {}
    return {key.lower(): value for key, value in headers.items()}


def make_oauth_request(tenant, endpoint, data, timeout=DEFAULT_TIMEOUT):
    """
    Make a request to OAuth2 endpoint

    Args:
        tenant: Azure AD tenant ID or "common"
        endpoint: OAuth2 endpoint path (e.g., /devicecode, /token)
        data: Dict of form data
        timeout: Socket timeout in seconds

    Returns:
        Response data as dict

    Raises:
        urllib.error.HTTPError: the provider answered with an error status
        urllib.error.URLError: the provider could not be reached
    """
    encoded_data = urllib.parse.urlencode(data).encode()

    req = urllib.request.Request(
        f'{LOGIN_BASE}/{tenant}/oauth2/v2.0{endpoint}',
        data=encoded_data,
        headers={'Content-Type': 'application/x-www-form-urlencoded'}
    )

    with urllib.request.urlopen(req, timeout=timeout) as response:
        return json.loads(response.read())


def parse_graph_datetime(dt_str):
    """Parse Microsoft Graph datetime format"""
    # Remove excess fractional seconds (keep max 6 digits)
    dt_str = re.sub(r'\.(\d{6})\d*', r'.\1', dt_str)
    # Handle timezone
    if not dt_str.endswith('Z') and '+' not in dt_str and '-' not in dt_str[-6:]:
        dt_str += 'Z'
    return datetime.fromisoformat(dt_str.replace('Z', '+00:00'))


def format_graph_datetime(dt_str, fmt='%Y-%m-%d %H:%M'):
    """Render a Graph datetime string in local time, or '' when missing"""
    if not dt_str:
        return ''
    return parse_graph_datetime(dt_str).astimezone().strftime(fmt)


def split_addresses(value):
    """Split a comma-separated address list, dropping blanks"""
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


def escape_odata_string(value):
    """Escape single quotes for use inside an OData string literal"""
    return value.replace("'", "''")


def page_size(limit, default):
    """$top value for a listing that should return `limit` items

    Graph rejects a $top of zero or less, so those fall back to `default`.
    """
    if not limit or limit <= 0:
        return default
    return min(limit, MAX_PAGE_SIZE)


def print_json(data):
    """Print data as indented JSON (used by --json)"""
    print(json.dumps(data, indent=2, ensure_ascii=False))
