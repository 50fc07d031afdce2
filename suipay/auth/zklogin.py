"""
zkLogin identity derivation.

Turns a third-party identity assertion (an OpenID Connect ID token) plus a
persisted per-identity salt into a stable Sui-style address:

    seed    = blake2b256(lp(sub) || lp(aud) || lp(salt))
    address = blake2b256(0x05 || len(iss) || iss || seed)

The salt is created once per identity and never recomputed; derivation fails
closed when no salt has been provisioned.
"""
import asyncio
import secrets
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import jwt
import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.config import Settings
from suipay.database.models import ZkLoginSalt

from .errors import ZkLoginError
from .signatures import blake2b256, uleb128

logger = structlog.get_logger(__name__)

ZKLOGIN_SCHEME_FLAG = 0x05
SALT_BITS = 128


class SaltStoreError(Exception):
    """Raised when the salt table cannot be read or written."""

    pass


@dataclass(frozen=True)
class IdentityAssertion:
    """The identifying claims of an external identity token."""

    sub: str
    iss: str
    aud: str

    @property
    def identity_key(self) -> str:
        """Key under which this identity's salt is stored."""
        return f"{self.iss}|{self.aud}|{self.sub}"


def _length_prefixed(value: str) -> bytes:
    raw = value.encode("utf-8")
    return uleb128(len(raw)) + raw


def _claim(payload: Any, name: str) -> str:
    value = payload.get(name)
    if name == "aud" and isinstance(value, list):
        if len(value) != 1:
            raise ZkLoginError("Identity token must name exactly one audience")
        value = value[0]
    if not isinstance(value, str) or not value:
        raise ZkLoginError(f"Identity token is missing the '{name}' claim")
    return value


class SaltStore:
    """Persistent mapping from external identity to salt."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, identity_key: str) -> Optional[str]:
        """Return the stored salt for an identity, or None."""
        async with self.session_factory() as db:
            try:
                result = await db.execute(
                    select(ZkLoginSalt.salt).where(ZkLoginSalt.identity_key == identity_key)
                )
                return result.scalar_one_or_none()
            except SQLAlchemyError as e:
                raise SaltStoreError(f"Failed to load salt: {str(e)}") from e

    async def provision(self, identity_key: str) -> str:
        """
        Return the identity's salt, creating it on first use.

        Concurrent first logins race on the primary key; the loser re-reads
        the winner's salt, so every caller sees the same persisted value.
        """
        existing = await self.get(identity_key)
        if existing is not None:
            return existing

        new_salt = str(secrets.randbits(SALT_BITS))
        async with self.session_factory() as db:
            try:
                db.add(ZkLoginSalt(identity_key=identity_key, salt=new_salt))
                await db.commit()
                logger.info("zklogin_salt_provisioned")
                return new_salt
            except IntegrityError:
                await db.rollback()
            except SQLAlchemyError as e:
                await db.rollback()
                raise SaltStoreError(f"Failed to store salt: {str(e)}") from e

        stored = await self.get(identity_key)
        if stored is None:
            raise SaltStoreError("Salt vanished after a conflicting insert")
        return stored


class ZkIdentityDeriver:
    """Derives stable addresses from external identity assertions."""

    def __init__(
        self,
        salt_store: Optional[SaltStore] = None,
        jwks_client: Optional[jwt.PyJWKClient] = None,
        require_verified: bool = False,
    ):
        """
        Initialize deriver.

        Args:
            salt_store: Source of persisted salts
            jwks_client: Optional JWKS client; when set, assertions must be
                signed by the identity provider
            require_verified: Refuse assertions when no JWKS client is set
        """
        self.salt_store = salt_store
        self.jwks_client = jwks_client
        self.require_verified = require_verified

    @classmethod
    def from_settings(
        cls, settings: Settings, salt_store: Optional[SaltStore] = None
    ) -> "ZkIdentityDeriver":
        jwks_client = jwt.PyJWKClient(settings.zklogin_jwks_url) if settings.zklogin_jwks_url else None
        return cls(
            salt_store=salt_store,
            jwks_client=jwks_client,
            require_verified=settings.is_production,
        )

    def parse_assertion(self, token: str) -> IdentityAssertion:
        """
        Decode an identity token and extract ``sub``, ``iss`` and ``aud``.

        Raises:
            ZkLoginError: If the token is unparsable, unverifiable or
                missing a required claim
        """
        if not isinstance(token, str) or not token.strip():
            raise ZkLoginError("Identity token is empty")
        if self.jwks_client is None and self.require_verified:
            logger.error("zklogin_unverified_assertion_refused")
            raise ZkLoginError("Identity provider verification is not configured")

        try:
            if self.jwks_client is not None:
                signing_key = self.jwks_client.get_signing_key_from_jwt(token)
                payload = jwt.decode(
                    token,
                    signing_key.key,
                    algorithms=["RS256", "ES256"],
                    options={"verify_aud": False},
                )
            else:
                payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise ZkLoginError(f"Malformed identity token: {str(e)}") from e

        if not isinstance(payload, dict):
            raise ZkLoginError("Identity token payload is not an object")

        return IdentityAssertion(
            sub=_claim(payload, "sub"),
            iss=_claim(payload, "iss"),
            aud=_claim(payload, "aud"),
        )

    @staticmethod
    def derive_address(assertion: IdentityAssertion, salt: str) -> str:
        """
        Compute the address for an identity and salt.

        Raises:
            ZkLoginError: If the salt is empty or the issuer too long
        """
        if not salt:
            raise ZkLoginError("Salt is required for address derivation")

        iss = assertion.iss.encode("utf-8")
        if len(iss) > 255:
            raise ZkLoginError("Issuer is too long")

        seed = blake2b256(
            _length_prefixed(assertion.sub)
            + _length_prefixed(assertion.aud)
            + _length_prefixed(salt)
        )
        return "0x" + blake2b256(bytes([ZKLOGIN_SCHEME_FLAG, len(iss)]) + iss + seed).hex()

    async def read_assertion(self, token: str) -> IdentityAssertion:
        """Async form of parse_assertion."""
        if self.jwks_client is not None:
            # JWKS lookups are blocking HTTP calls
            return await asyncio.to_thread(self.parse_assertion, token)
        return self.parse_assertion(token)

    async def derive_with_stored_salt(self, assertion: IdentityAssertion) -> str:
        """
        Derive the address for an assertion using its persisted salt.

        Raises:
            ZkLoginError: If no salt has been provisioned for the identity
            SaltStoreError: If the salt table cannot be read
        """
        if self.salt_store is None:
            raise ZkLoginError("No salt store configured")

        salt = await self.salt_store.get(assertion.identity_key)
        if salt is None:
            logger.warning("zklogin_salt_missing", iss=assertion.iss)
            raise ZkLoginError("No salt provisioned for this identity")

        return self.derive_address(assertion, salt)

    async def derive_for_assertion(self, token: str) -> Tuple[IdentityAssertion, str]:
        """
        Parse a token and derive its address from the persisted salt.

        Returns:
            Tuple[IdentityAssertion, str]: The assertion and derived address

        Raises:
            ZkLoginError: If the token is malformed or no salt exists
        """
        assertion = await self.read_assertion(token)
        return assertion, await self.derive_with_stored_salt(assertion)
