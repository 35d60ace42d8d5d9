"""
Error types for Outlook CLI

Every failure the token manager or the request pipeline can surface is one of
these. The entry point in __main__ is the only place they become exit codes.
"""


class OutlookError(Exception):
    """Base class for all outlook-cli errors"""


class ConfigError(OutlookError):
    """Required configuration (client id, refresh token) is missing or invalid"""


# ============================================================================
# AUTHENTICATION ERRORS (token endpoint)
# ============================================================================

class AuthError(OutlookError):
    """The identity provider refused or failed a token exchange

    Attributes:
        code: OAuth error code (e.g. 'invalid_client'), or a local code
        description: Human-readable description from the provider
    """

    def __init__(self, code, description=''):
        self.code = code
        self.description = description
        message = f"{code}: {description}" if description else code
        super().__init__(message)


class InvalidGrant(AuthError):
    """The refresh token is expired, revoked or otherwise unusable"""

    def __init__(self, description=''):
        super().__init__('invalid_grant', description)


class AuthNetworkError(AuthError):
    """The token endpoint could not be reached"""

    def __init__(self, description=''):
        super().__init__('network_error', description)


# ============================================================================
# API ERRORS (Graph requests)
# ============================================================================

class ApiError(OutlookError):
    """A Graph API request failed"""


class Unauthorized(ApiError):
    """Graph rejected the access token even after a fresh exchange"""


class Rejected(ApiError):
    """Graph refused the request with a non-retryable 4xx status

    Attributes:
        code: Graph error code (e.g. 'ErrorItemNotFound')
        message: Graph error message
        status: HTTP status code
    """

    def __init__(self, code, message, status=None):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code}: {message}" if message else code)


class Unavailable(ApiError):
    """Throttled (429) or service unavailable (503) on every attempt"""


class ServerError(ApiError):
    """Graph answered with a 5xx status on every attempt"""


class MalformedResponse(ApiError):
    """A success response body was not the JSON we expected"""


class NetworkError(ApiError):
    """The request never got an HTTP response on any attempt"""


class UnknownOutcome(ApiError):
    """A mutating request failed after it may have reached the service

    The change may or may not have been applied; callers must not report
    success or failure.
    """
