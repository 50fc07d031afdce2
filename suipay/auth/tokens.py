"""
Bearer credential issuing and verification.

Credentials are stateless HS256 JWTs binding a subject (a verified wallet
address or a derived zkLogin address) to an expiry. Nothing is stored
server-side; a credential is revoked only by expiring.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog

from suipay.config import Settings

from .errors import InvalidToken, MissingCredentials, TokenExpired, TokenSigningError

logger = structlog.get_logger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Claims:
    """Verified contents of a bearer credential."""

    sub: str
    exp: datetime
    iat: Optional[datetime] = None


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted credential."""

    token: str
    subject: str
    expires_at: datetime


class IdentityIssuer:
    """Mints signed, time-bounded credentials for proven subjects."""

    def __init__(self, secret: str, ttl_seconds: int = 86400, algorithm: str = "HS256"):
        """
        Initialize issuer.

        Args:
            secret: Signing secret
            ttl_seconds: Credential lifetime
            algorithm: JWT signing algorithm
        """
        self._secret = secret
        self.ttl = timedelta(seconds=ttl_seconds)
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityIssuer":
        return cls(
            secret=settings.jwt_secret,
            ttl_seconds=settings.jwt_ttl_seconds,
            algorithm=settings.jwt_algorithm,
        )

    def issue(self, subject: str, now: Optional[datetime] = None) -> IssuedToken:
        """
        Issue a credential for an already-authenticated subject.

        Args:
            subject: Wallet or derived address
            now: Issue time (defaults to the current time)

        Returns:
            IssuedToken: Token, subject and expiry

        Raises:
            TokenSigningError: If the signing secret is unusable
        """
        if not self._secret:
            logger.error("token_signing_failed", reason="empty_secret")
            raise TokenSigningError("Signing secret is not configured")

        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self.ttl
        payload: Dict[str, Any] = {
            "sub": subject,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }

        try:
            token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as e:
            logger.error("token_signing_failed", error=str(e))
            raise TokenSigningError(f"Unable to sign token: {str(e)}") from e

        return IssuedToken(token=token, subject=subject, expires_at=expires_at)


class IdentityVerifier:
    """Validates bearer credentials and yields the trusted subject."""

    def __init__(self, secret: str, algorithm: str = "HS256", leeway_seconds: int = 0):
        self._secret = secret
        self.algorithm = algorithm
        self.leeway_seconds = leeway_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityVerifier":
        return cls(secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)

    def verify(self, token: str) -> Claims:
        """
        Verify a raw token.

        Raises:
            TokenExpired: If the token is past its expiry
            InvalidToken: If the token is malformed or wrongly signed
        """
        if not token:
            raise InvalidToken("Empty token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
                leeway=self.leeway_seconds,
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired() from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Invalid token: {str(e)}") from e

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidToken("Token subject is missing")

        iat = payload.get("iat")
        return Claims(
            sub=subject,
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(iat, tz=timezone.utc) if isinstance(iat, int) else None,
        )

    def verify_header(self, authorization: Optional[str]) -> Claims:
        """
        Verify an ``Authorization`` header value.

        Raises:
            MissingCredentials: If the header is absent or blank
            InvalidToken: If it is not a valid bearer credential
        """
        if authorization is None or not authorization.strip():
            raise MissingCredentials()

        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != BEARER_SCHEME or not token.strip():
            raise InvalidToken("Authorization header must use the Bearer scheme")

        return self.verify(token.strip())
