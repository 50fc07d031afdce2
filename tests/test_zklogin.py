"""
Tests for zkLogin identity derivation and salt storage.
"""
import asyncio
from typing import Any, Dict

import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.auth import IdentityAssertion, SaltStore, ZkIdentityDeriver, ZkLoginError
from suipay.config import Settings

PROVIDER_KEY = "identity-provider-key-that-is-long-enough"


def id_token(**claims: Any) -> str:
    payload: Dict[str, Any] = {
        "iss": "https://accounts.google.com",
        "aud": "suipay-web",
        "sub": "110169484474386276334",
    }
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, PROVIDER_KEY)


class TestParseAssertion:
    """Test suite for identity token parsing."""

    @pytest.mark.unit
    def test_extracts_identity_claims(self) -> None:
        assertion = ZkIdentityDeriver().parse_assertion(id_token())

        assert assertion == IdentityAssertion(
            sub="110169484474386276334",
            iss="https://accounts.google.com",
            aud="suipay-web",
        )
        assert assertion.identity_key == (
            "https://accounts.google.com|suipay-web|110169484474386276334"
        )

    @pytest.mark.unit
    def test_single_audience_list(self) -> None:
        assertion = ZkIdentityDeriver().parse_assertion(id_token(aud=["suipay-web"]))

        assert assertion.aud == "suipay-web"

    @pytest.mark.unit
    def test_multiple_audiences_rejected(self) -> None:
        with pytest.raises(ZkLoginError, match="exactly one audience"):
            ZkIdentityDeriver().parse_assertion(id_token(aud=["a", "b"]))

    @pytest.mark.unit
    @pytest.mark.parametrize("claim", ["sub", "iss", "aud"])
    def test_missing_claim(self, claim: str) -> None:
        with pytest.raises(ZkLoginError, match=claim):
            ZkIdentityDeriver().parse_assertion(id_token(**{claim: None}))

    @pytest.mark.unit
    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed_token(self, token: str) -> None:
        """Malformed assertions are a client error (400)."""
        with pytest.raises(ZkLoginError) as exc_info:
            ZkIdentityDeriver().parse_assertion(token)

        assert exc_info.value.status_code == 400


class TestDeriveAddress:
    """Test suite for address derivation."""

    ASSERTION = IdentityAssertion(sub="user-1", iss="https://issuer.example", aud="client-1")

    @pytest.mark.unit
    def test_deterministic(self) -> None:
        first = ZkIdentityDeriver.derive_address(self.ASSERTION, "1234")
        second = ZkIdentityDeriver.derive_address(self.ASSERTION, "1234")

        assert first == second
        assert first.startswith("0x")
        assert len(first) == 66

    @pytest.mark.unit
    def test_salt_changes_address(self) -> None:
        assert ZkIdentityDeriver.derive_address(
            self.ASSERTION, "1234"
        ) != ZkIdentityDeriver.derive_address(self.ASSERTION, "1235")

    @pytest.mark.unit
    def test_identity_changes_address(self) -> None:
        other = IdentityAssertion(sub="user-2", iss=self.ASSERTION.iss, aud=self.ASSERTION.aud)

        assert ZkIdentityDeriver.derive_address(
            self.ASSERTION, "1234"
        ) != ZkIdentityDeriver.derive_address(other, "1234")

    @pytest.mark.unit
    def test_empty_salt_rejected(self) -> None:
        with pytest.raises(ZkLoginError):
            ZkIdentityDeriver.derive_address(self.ASSERTION, "")


class TestSaltStore:
    """Test suite for persisted salts."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_provision_is_stable(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """The first provisioned salt is returned on every later call."""
        store = SaltStore(session_factory)

        assert await store.get("iss|aud|sub") is None

        salt = await store.provision("iss|aud|sub")

        assert salt.isdigit()
        assert await store.provision("iss|aud|sub") == salt
        assert await store.get("iss|aud|sub") == salt

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_distinct_identities_get_distinct_salts(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        store = SaltStore(session_factory)

        assert await store.provision("a") != await store.provision("b")


class TestDeriveWithStoredSalt:
    """Test suite for derivation against the salt table."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_fails_closed_without_salt(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Derivation never invents a salt."""
        deriver = ZkIdentityDeriver(salt_store=SaltStore(session_factory))

        with pytest.raises(ZkLoginError, match="No salt provisioned"):
            await deriver.derive_for_assertion(id_token())

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_same_identity_same_address(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Repeated logins, even with fresh tokens, derive the same address."""
        store = SaltStore(session_factory)
        deriver = ZkIdentityDeriver(salt_store=store)
        assertion = deriver.parse_assertion(id_token())
        await store.provision(assertion.identity_key)

        _, first = await deriver.derive_for_assertion(id_token(iat=1))
        _, second = await deriver.derive_for_assertion(id_token(iat=2))

        assert first == second

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_provision_race_returns_winner(
        self, session_factory: async_sessionmaker[AsyncSession], mocker: Any
    ) -> None:
        """A conflicting insert re-reads the salt stored by the other login."""
        store = SaltStore(session_factory)
        winner = await store.provision("iss|aud|sub")

        # Both logins saw no salt before either inserted
        mocker.patch.object(store, "get", side_effect=[None, winner])

        assert await store.provision("iss|aud|sub") == winner


class TestVerificationPolicy:
    """Test suite for unverified assertion handling."""

    @pytest.mark.unit
    def test_unverified_assertion_refused_when_required(self) -> None:
        """Without a JWKS client, a deriver that requires verification refuses tokens."""
        with pytest.raises(ZkLoginError, match="verification is not configured"):
            ZkIdentityDeriver(require_verified=True).parse_assertion(id_token())

    @pytest.mark.unit
    def test_production_requires_verification(self, test_settings: Settings) -> None:
        settings = test_settings.model_copy(update={"app_env": "production"})

        deriver = ZkIdentityDeriver.from_settings(settings)

        assert deriver.require_verified is True
        with pytest.raises(ZkLoginError):
            deriver.parse_assertion(id_token())

    @pytest.mark.unit
    def test_development_accepts_unverified(self, test_settings: Settings) -> None:
        deriver = ZkIdentityDeriver.from_settings(test_settings)

        assert deriver.require_verified is False
        assert deriver.parse_assertion(id_token()).sub == "110169484474386276334"
