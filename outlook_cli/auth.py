"""
OAuth2 authentication for Outlook CLI

Exchanges a long-lived refresh token for short-lived access tokens, and
provides the 'auth' commands (device code login, token check).

Tokens only ever live in memory. 'auth login' prints the refresh token it
obtains so the user can export it; nothing is written to disk.
"""

import http.client
import json
import logging
import sys
import threading
import time
import urllib.error
from dataclasses import dataclass, field

from .common import (
    DEFAULT_SCOPES, DEFAULT_TENANT, DEFAULT_TIMEOUT, ENV_REFRESH_TOKEN,
    load_config, make_oauth_request,
)
from .errors import AuthError, AuthNetworkError, ConfigError, InvalidGrant

logger = logging.getLogger(__name__)

# Refresh this many seconds before the provider's stated expiry
TOKEN_EXPIRY_SKEW = 60


@dataclass(frozen=True)
class Credentials:
    """Public-client credentials: a refresh token and the application id"""

    refresh_token: str = field(repr=False)
    client_id: str

    @classmethod
    def from_config(cls, config):
        """Build credentials from load_config() output"""
        if not config.get('refresh_token'):
            raise ConfigError(
                "No refresh token. Pass --token or set "
                f"{ENV_REFRESH_TOKEN} (run 'outlook-cli auth login' to obtain one)."
            )
        return cls(refresh_token=config['refresh_token'], client_id=config['client_id'])


@dataclass(frozen=True)
class AccessToken:
    """A bearer token, when it expires and when to replace it (epoch seconds)"""

    value: str = field(repr=False)
    expires_at: float
    refresh_at: float


class TokenManager:
    """Hands out a valid access token, exchanging the refresh token when needed

    At most one access token is live at a time. The first call to
    get_valid_token() performs the exchange; later calls reuse the token until
    it is within `skew` seconds of expiring. For tokens that live no longer
    than twice the skew, half the lifetime is used instead. All access goes
    through a lock so concurrent callers never refresh twice.
    """

    def __init__(self, credentials, tenant=DEFAULT_TENANT, scopes=None,
                 skew=TOKEN_EXPIRY_SKEW, timeout=DEFAULT_TIMEOUT, clock=time.time):
        self.client_id = credentials.client_id
        self.tenant = tenant
        self.scopes = list(scopes or DEFAULT_SCOPES)
        self.skew = skew
        self.timeout = timeout
        self._clock = clock
        self._refresh_token = credentials.refresh_token
        self._token = None
        self._lock = threading.Lock()

    def get_valid_token(self):
        """Return a non-expired AccessToken, exchanging the refresh token if needed

        Raises:
            InvalidGrant: the refresh token was rejected
            AuthNetworkError: the token endpoint could not be reached
            AuthError: any other token endpoint failure
        """
        with self._lock:
            if self._token is None or self._clock() >= self._token.refresh_at:
                self._token = self._exchange()
            return self._token

    def invalidate(self, token=None):
        """Drop the live token so the next get_valid_token() exchanges again

        If `token` is given, only drop it when it is still the live token, so
        two callers reporting the same stale token cause a single refresh.
        """
        with self._lock:
            if token is None or self._token is token:
                self._token = None

    def _exchange(self):
        """POST the refresh token to the token endpoint"""
        logger.debug("Exchanging refresh token (tenant=%s)", self.tenant)
        try:
            tokens = make_oauth_request(self.tenant, '/token', {
                'client_id': self.client_id,
                'grant_type': 'refresh_token',
                'refresh_token': self._refresh_token,
                'scope': ' '.join(self.scopes)
            }, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            raise auth_error_from_http(e) from e
        except urllib.error.URLError as e:
            raise AuthNetworkError(str(e.reason)) from e
        except (OSError, http.client.HTTPException) as e:
            raise AuthNetworkError(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise AuthError('invalid_response', 'token endpoint returned malformed JSON') from e

        access_token = tokens.get('access_token') if isinstance(tokens, dict) else None
        if not access_token:
            raise AuthError('invalid_response', 'token response has no access_token')
        if 'expires_in' not in tokens:
            raise AuthError('invalid_response', 'token response has no expires_in')
        try:
            expires_in = int(tokens['expires_in'])
        except (TypeError, ValueError) as e:
            raise AuthError('invalid_response', 'token response has an invalid expires_in') from e
        if expires_in <= 0:
            raise AuthError('invalid_response', f'token response has expires_in={expires_in}')

        # The provider may rotate the refresh token
        if tokens.get('refresh_token'):
            self._refresh_token = tokens['refresh_token']

        # Short-lived tokens keep at least half their lifetime usable
        skew = min(self.skew, expires_in // 2)
        now = self._clock()
        logger.debug("Access token acquired, expires in %d seconds", expires_in)
        return AccessToken(value=access_token, expires_at=now + expires_in,
                           refresh_at=now + expires_in - skew)


def auth_error_from_http(error):
    """Map an HTTPError from the token endpoint to an AuthError"""
    try:
        error_data = json.loads(error.read())
    except ValueError:
        error_data = {}
    if not isinstance(error_data, dict):
        error_data = {}

    error_code = error_data.get('error') or f'HTTP{error.code}'
    # AADSTS descriptions carry trace and correlation ids on later lines
    description = (error_data.get('error_description') or '').splitlines()
    description = description[0] if description else ''

    if error_code == 'invalid_grant':
        return InvalidGrant(description)
    return AuthError(error_code, description)


def device_code_flow(client_id, tenant=DEFAULT_TENANT, scopes=None, timeout=DEFAULT_TIMEOUT):
    """Initiate device code flow and return the provider's token response"""
    scopes = scopes or DEFAULT_SCOPES

    # Step 1: Request device code
    try:
        device_code_data = make_oauth_request(tenant, '/devicecode', {
            'client_id': client_id,
            'scope': ' '.join(scopes)
        }, timeout=timeout)
    except urllib.error.HTTPError as e:
        raise auth_error_from_http(e) from e
    except urllib.error.URLError as e:
        raise AuthNetworkError(str(e.reason)) from e

    print("\n" + "="*70)
    print("OUTLOOK OAUTH2 AUTHENTICATION")
    print("="*70)
    print(f"\n1. Open this URL in your browser:\n   {device_code_data['verification_uri']}")
    print(f"\n2. Enter this code: {device_code_data['user_code']}")
    print("\n3. Sign in with your Microsoft account")
    print(f"\nWaiting for authentication (expires in {device_code_data['expires_in']} seconds)...")
    print("="*70 + "\n")

    # Step 2: Poll for token
    interval = device_code_data.get('interval', 5)
    device_code = device_code_data['device_code']
    expires_in = device_code_data['expires_in']
    start_time = time.time()

    while True:
        if time.time() - start_time > expires_in:
            raise AuthError('expired_token', 'authentication timed out')

        time.sleep(interval)

        try:
            return make_oauth_request(tenant, '/token', {
                'client_id': client_id,
                'grant_type': 'urn:ietf:params:oauth:grant-type:device_code',
                'device_code': device_code
            }, timeout=timeout)
        except urllib.error.HTTPError as e:
            error = auth_error_from_http(e)
            if error.code == 'authorization_pending':
                print(".", end="", flush=True)
                continue
            if error.code == 'slow_down':
                interval += 5
                continue
            raise error from e
        except urllib.error.URLError as e:
            raise AuthNetworkError(str(e.reason)) from e


# Command handlers

def cmd_login(args):
    """Handle 'outlook-cli auth login' command"""
    config = load_config(client_id=args.client_id, tenant=args.tenant)
    tokens = device_code_flow(config['client_id'], tenant=config['tenant'],
                              scopes=config['scopes'], timeout=config['timeout'])

    refresh_token = tokens.get('refresh_token')
    if not refresh_token:
        raise AuthError('invalid_response', "no refresh token issued (is 'offline_access' in scopes?)")

    print("\n✓ Authentication successful!")
    print("The refresh token below is not stored anywhere. Export it to use it:\n")
    print(f"export {ENV_REFRESH_TOKEN}='{refresh_token}'\n")


def cmd_check(args):
    """Handle 'outlook-cli auth check' command"""
    config = load_config(client_id=args.client_id, refresh_token=args.token, tenant=args.tenant)
    manager = TokenManager(Credentials.from_config(config), tenant=config['tenant'],
                           scopes=config['scopes'], timeout=config['timeout'])
    token = manager.get_valid_token()

    remaining = int(token.expires_at - time.time())
    print("✓ Refresh token accepted")
    print(f"Client ID: {manager.client_id}")
    print(f"Tenant:    {manager.tenant}")
    print(f"Access token expires in {remaining} seconds")


# Setup and routing

def setup_parser(subparsers):
    """Setup argparse subcommands for auth"""

    # outlook-cli auth login
    login_parser = subparsers.add_parser(
        'login',
        help='Obtain a refresh token (device code flow)',
        description='Authenticate with device code flow and print the resulting '
                    'refresh token. The token is not stored; export it as '
                    f'{ENV_REFRESH_TOKEN} or pass it with --token.'
    )
    login_parser.set_defaults(func=cmd_login)

    # outlook-cli auth check
    check_parser = subparsers.add_parser(
        'check',
        help='Verify the refresh token',
        description='Exchange the refresh token for an access token and report its '
                    'lifetime. The access token itself is never printed.'
    )
    check_parser.set_defaults(func=cmd_check)


def handle_command(args):
    """Route to appropriate auth subcommand"""
    if hasattr(args, 'func'):
        args.func(args)
    else:
        print("Error: No auth subcommand specified", file=sys.stderr)
        sys.exit(1)
