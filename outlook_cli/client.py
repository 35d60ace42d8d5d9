"""
Graph request pipeline

Turns an Operation into an authenticated Graph call: attaches the bearer
token, retries transient failures with exponential backoff, refreshes the
token once on 401, follows @odata.nextLink pages lazily and maps error
responses onto the types in errors.py.
"""

import http.client
import json
import logging
import time
import urllib.error
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from .auth import Credentials, TokenManager
from .common import GRAPH_API_BASE, DEFAULT_TIMEOUT, load_config, send_request
from .errors import (
    MalformedResponse, NetworkError, Rejected, ServerError, Unauthorized,
    Unavailable, UnknownOutcome,
)

logger = logging.getLogger(__name__)

# Methods that never change server state and are safe to repeat
SAFE_METHODS = frozenset(['GET', 'HEAD', 'OPTIONS'])

# Statuses that mean "throttled or overloaded, come back later"
THROTTLE_STATUSES = frozenset([429, 503])

# Characters left unescaped in query strings so OData keys stay readable
QUERY_SAFE_CHARS = "$',:()/"


@dataclass(frozen=True)
class Operation:
    """A single Graph call, built by a command and executed by GraphClient

    Attributes:
        method: HTTP method
        path: Path relative to the Graph base URL (or an absolute URL)
        query_params: Query string parameters
        body: JSON-serializable request body, or None
        paginate: Expose the result as a PageIterator
        description: Short human-readable label used in error messages
    """

    method: str
    path: str
    query_params: dict = field(default_factory=dict)
    body: object = None
    paginate: bool = False
    description: str = ''

    @property
    def is_mutating(self):
        return self.method.upper() not in SAFE_METHODS

    def url(self, base_url=GRAPH_API_BASE):
        """Absolute URL with the encoded query string"""
        if self.path.startswith(('http://', 'https://')):
            url = self.path
        else:
            url = base_url.rstrip('/') + '/' + self.path.lstrip('/')
        if self.query_params:
            query = urllib.parse.urlencode(self.query_params, safe=QUERY_SAFE_CHARS,
                                           quote_via=urllib.parse.quote)
            url = f"{url}?{query}"
        return url

    def label(self):
        return self.description or f"{self.method.upper()} {self.path}"


def parse_retry_after(headers, now=None):
    """
    Parse a Retry-After header into seconds to wait

    Accepts both delta-seconds ("2") and HTTP-date forms.

    Args:
        headers: Response headers with lowercase keys
        now: Current time as an aware datetime (defaults to utcnow)

    Returns:
        Non-negative float, or None if the header is absent or unparseable
    """
    if not headers:
        return None
    value = headers.get('retry-after')
    if value is None:
        return None
    value = str(value).strip()

    if value.isdigit():
        return float(value)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RetryPolicy:
    """Decides whether and how long to wait before retrying a failed attempt

    Stateless: the answer depends only on the attempt number, the status
    (None for a network failure) and the response headers.
    """

    def __init__(self, attempts=3, base_delay=1.0, factor=2.0, max_delay=30.0):
        self.attempts = attempts
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay

    @staticmethod
    def is_transient(status):
        return status is None or status in THROTTLE_STATUSES or status >= 500

    def delay(self, attempt, status=None, headers=None):
        """
        Seconds to wait before the next attempt, or None to give up

        Args:
            attempt: 1-based number of the attempt that just failed
            status: HTTP status, or None for a network-level failure
            headers: Response headers (lowercase keys)
        """
        if attempt >= self.attempts or not self.is_transient(status):
            return None

        retry_after = parse_retry_after(headers)
        if retry_after is not None:
            return retry_after

        return min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)


@dataclass
class Page:
    """One page of a list response"""

    items: list
    next_link: str = None

    @classmethod
    def from_body(cls, body):
        if not isinstance(body, dict) or not isinstance(body.get('value'), list):
            raise MalformedResponse("list response has no 'value' array")
        return cls(items=body['value'], next_link=body.get('@odata.nextLink'))


class PageIterator:
    """Lazy, single-pass sequence of pages

    The first page is the body GraphClient.execute() already fetched. Each
    further page is requested only when the iterator is advanced past the
    current one, and iteration stops at the first page without a next link.
    To start over, execute the operation again.
    """

    def __init__(self, client, first_body):
        self._client = client
        self._page = Page.from_body(first_body)
        self._next_link = None
        self.fetch_count = 1

    def __iter__(self):
        return self

    def __next__(self):
        if self._page is None:
            if not self._next_link:
                raise StopIteration
            link, self._next_link = self._next_link, None
            body = self._client.fetch_page(link)
            self.fetch_count += 1
            self._page = Page.from_body(body)

        page, self._page = self._page, None
        self._next_link = page.next_link
        return page

    def items(self, limit=None):
        """Yield items across pages, fetching no further page once `limit` is reached"""
        if limit is not None and limit <= 0:
            return
        count = 0
        for page in self:
            for item in page.items:
                yield item
                count += 1
                if limit is not None and count >= limit:
                    return

    def collect(self, limit=None):
        """Fetch every remaining page (or up to `limit` items) into a list"""
        return list(self.items(limit))


class _AttemptFailed(Exception):
    """Internal: one attempt failed in a way the retry policy should judge"""

    def __init__(self, status, headers, reason):
        self.status = status
        self.headers = headers
        self.reason = reason
        super().__init__(reason)


class GraphClient:
    """Executes Operations against Microsoft Graph"""

    def __init__(self, token_manager, base_url=GRAPH_API_BASE, retry_policy=None,
                 timeout=DEFAULT_TIMEOUT, transport=send_request, sleep=time.sleep):
        self.token_manager = token_manager
        self.base_url = base_url
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.transport = transport
        self.sleep = sleep

    def execute(self, op):
        """
        Run an operation

        Returns:
            The decoded JSON body, None for an empty body, or a PageIterator
            when op.paginate is set

        Raises:
            ApiError subclasses for request failures, AuthError subclasses
            when no access token can be obtained
        """
        body = self._request(op.method.upper(), op.url(self.base_url), data=op.body,
                             mutating=op.is_mutating, label=op.label())
        if op.paginate:
            return PageIterator(self, body)
        return body

    def fetch_page(self, url):
        """GET a next link under the same token and retry rules"""
        return self._request('GET', url, label=f"GET {url}")

    def _request(self, method, url, data=None, mutating=False, label=''):
        payload = json.dumps(data).encode() if data is not None else None
        attempt = 0
        retried_auth = False

        while True:
            attempt += 1
            token = self.token_manager.get_valid_token()
            try:
                status, headers, body = self._send(method, url, token, payload, mutating, label)
            except _AttemptFailed as failure:
                status, headers = None, {}
                reason = failure.reason
            else:
                if 200 <= status < 300:
                    return decode_body(body)

                if status == 401:
                    if retried_auth:
                        raise Unauthorized(f"{label}: access token rejected after refresh")
                    logger.info("%s: HTTP 401, refreshing access token", label)
                    retried_auth = True
                    self.token_manager.invalidate(token)
                    # The auth retry does not use up a transient attempt
                    attempt -= 1
                    continue

                if not self.retry_policy.is_transient(status):
                    raise rejected_from_response(status, body)
                reason = f"HTTP {status}"

            wait = self.retry_policy.delay(attempt, status, headers)
            if wait is None:
                raise exhausted_error(status, f"{label}: {reason} after {attempt} attempt(s)")

            logger.warning("Retry %d/%d after %s, waiting %.1fs",
                           attempt, self.retry_policy.attempts - 1, reason, wait)
            self.sleep(wait)

    def _send(self, method, url, token, payload, mutating, label):
        headers = {
            'Authorization': f'Bearer {token.value}',
            'Accept': 'application/json',
        }
        if payload is not None:
            headers['Content-Type'] = 'application/json'

        try:
            return self.transport(url, method=method, headers=headers, data=payload,
                                  timeout=self.timeout)
        except urllib.error.URLError as e:
            # urllib raises URLError while connecting or sending, before any
            # response exists
            raise _AttemptFailed(None, {}, f"network error ({e.reason})") from e
        except (OSError, http.client.HTTPException) as e:
            # The request was sent; the service may have acted on it
            if mutating:
                raise UnknownOutcome(
                    f"{label}: connection lost before a response arrived ({str(e) or type(e).__name__}); "
                    "the change may or may not have been applied"
                ) from e
            raise _AttemptFailed(None, {}, f"network error ({str(e) or type(e).__name__})") from e


def decode_body(body):
    """Decode a success body; empty means None, anything not JSON is an error"""
    if not body or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as e:
        raise MalformedResponse(f"response body is not valid JSON: {e}") from e


def rejected_from_response(status, body):
    """Build a Rejected error from a Graph error body"""
    code, message = f"HTTP{status}", ''
    try:
        data = json.loads(body) if body else {}
    except ValueError:
        data = {}
        message = body.decode('utf-8', 'replace').strip()[:200] if isinstance(body, bytes) else ''

    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict):
        code = error.get('code') or code
        message = error.get('message') or message

    return Rejected(code, message, status=status)


def exhausted_error(status, message):
    """The error raised once retries of a transient failure run out"""
    if status is None:
        return NetworkError(message)
    if status in THROTTLE_STATUSES:
        return Unavailable(message)
    return ServerError(message)


def get_client(args):
    """Build a GraphClient from command-line arguments and configuration"""
    config = load_config(client_id=args.client_id, refresh_token=args.token, tenant=args.tenant)
    token_manager = TokenManager(Credentials.from_config(config), tenant=config['tenant'],
                                 scopes=config['scopes'], timeout=config['timeout'])
    policy = RetryPolicy(attempts=config['retry_attempts'],
                         base_delay=config['retry_base_delay'],
                         max_delay=config['retry_max_delay'])
    return GraphClient(token_manager, retry_policy=policy, timeout=config['timeout'])
