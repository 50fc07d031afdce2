"""Identity and authentication: wallet signatures, zkLogin and bearer credentials."""
from .errors import (
    AuthError,
    InvalidSignature,
    InvalidToken,
    MissingCredentials,
    TokenExpired,
    TokenSigningError,
    ZkLoginError,
)
from .signatures import verify_personal_message
from .tokens import Claims, IdentityIssuer, IdentityVerifier, IssuedToken
from .zklogin import IdentityAssertion, SaltStore, SaltStoreError, ZkIdentityDeriver

__all__ = [
    "AuthError",
    "Claims",
    "IdentityAssertion",
    "IdentityIssuer",
    "IdentityVerifier",
    "InvalidSignature",
    "InvalidToken",
    "IssuedToken",
    "MissingCredentials",
    "SaltStore",
    "SaltStoreError",
    "TokenExpired",
    "TokenSigningError",
    "ZkIdentityDeriver",
    "ZkLoginError",
    "verify_personal_message",
]
