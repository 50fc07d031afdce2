"""
Authentication error taxonomy.

Each error kind is its own class with a stable ``code`` and HTTP status so
callers (and tests) can tell "not logged in" apart from "session invalid"
without looking at message text.
"""


class AuthError(Exception):
    """Base class for authentication failures."""

    code = "auth_error"
    status_code = 401
    default_message = "Authentication failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


class MissingCredentials(AuthError):
    """The request carried no credential at all."""

    code = "missing_credentials"
    status_code = 400
    default_message = "Missing credentials"


class InvalidToken(AuthError):
    """A credential was presented but could not be verified."""

    code = "invalid_token"
    status_code = 401
    default_message = "Invalid token"


class TokenExpired(InvalidToken):
    """The credential verified but its expiry has passed."""

    code = "token_expired"
    default_message = "Token has expired"


class TokenSigningError(InvalidToken):
    """The server could not sign a credential (configuration fault)."""

    code = "token_signing_error"
    status_code = 500
    default_message = "Unable to issue token"


class InvalidSignature(AuthError):
    """A wallet signature did not verify against the message and address."""

    code = "invalid_signature"
    status_code = 401
    default_message = "Invalid wallet signature"


class ZkLoginError(AuthError):
    """A zkLogin identity assertion could not be turned into an address."""

    code = "zklogin_error"
    status_code = 400
    default_message = "zkLogin verification failed"
