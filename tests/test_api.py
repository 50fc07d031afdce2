"""
API tests for authentication, orders, indexer inspection and monitoring.
"""
import asyncio
import uuid
from typing import Any, Dict

import httpx
import jwt
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from suipay.api.main import create_app, stop_indexer
from suipay.config import Settings
from suipay.integrations.sui_client import EventId, EventPage

from .factories import FakeEventSource, Wallet, payment_event

MESSAGE = "Sign in to SuiPay"


def id_token(sub: str = "user-1") -> str:
    return jwt.encode(
        {"iss": "https://accounts.google.com", "aud": "suipay-web", "sub": sub},
        "identity-provider-key-that-is-long-enough",
    )


async def wallet_login(client: httpx.AsyncClient, wallet: Wallet) -> Dict[str, Any]:
    response = await client.post(
        "/auth/login",
        json={"address": wallet.address, "signature": wallet.sign(MESSAGE), "message": MESSAGE},
    )
    assert response.status_code == 200
    return response.json()


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestAuthRoutes:
    """Test suite for /auth routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_login(self, client: httpx.AsyncClient, wallet: Wallet) -> None:
        body = await wallet_login(client, wallet)

        assert body["sui_address"] == wallet.address
        assert body["token"]
        assert body["expires_at"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_login_bad_signature(
        self, client: httpx.AsyncClient, wallet: Wallet
    ) -> None:
        response = await client.post(
            "/auth/login",
            json={
                "address": wallet.address,
                "signature": wallet.sign("something else"),
                "message": MESSAGE,
            },
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_signature"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_zklogin_is_stable(self, client: httpx.AsyncClient) -> None:
        """The same identity derives the same address on every login."""
        first = await client.post("/auth/zklogin/verify", json={"jwt": id_token()})
        second = await client.post("/auth/zklogin/verify", json={"jwt": id_token()})
        other = await client.post("/auth/zklogin/verify", json={"jwt": id_token("user-2")})

        assert first.status_code == 200
        assert first.json()["sui_address"] == second.json()["sui_address"]
        assert first.json()["sui_address"] != other.json()["sui_address"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_zklogin_malformed_token(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/auth/zklogin/verify", json={"jwt": "garbage"})

        assert response.status_code == 400
        assert response.json()["error"] == "zklogin_error"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_zklogin_without_provisioning(
        self, test_settings: Settings, engine: AsyncEngine, fake_source: FakeEventSource
    ) -> None:
        """With auto-provisioning off, unknown identities are refused."""
        settings = test_settings.model_copy(update={"zklogin_auto_provision_salt": False})
        app = create_app(settings, engine=engine, event_source=fake_source)

        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            response = await client.post("/auth/zklogin/verify", json={"jwt": id_token()})

        assert response.status_code == 400
        assert response.json()["error"] == "zklogin_error"


class TestOrderRoutes:
    """Test suite for /orders routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_requires_credentials(self, client: httpx.AsyncClient) -> None:
        """No credential is a 400, a bad one is a 401."""
        missing = await client.post("/orders", json={"amount": 100})
        invalid = await client.post(
            "/orders", json={"amount": 100}, headers=bearer("not-a-token")
        )

        assert missing.status_code == 400
        assert missing.json()["error"] == "missing_credentials"
        assert invalid.status_code == 401
        assert invalid.json()["error"] == "invalid_token"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_and_get(self, client: httpx.AsyncClient, wallet: Wallet) -> None:
        token = (await wallet_login(client, wallet))["token"]

        created = await client.post("/orders", json={"amount": 1000}, headers=bearer(token))

        assert created.status_code == 201
        order = created.json()
        assert order["status"] == "PENDING"
        assert order["currency"] == "USDC"
        assert order["merchant_address"] == wallet.address

        fetched = await client.get(f"/orders/{order['id']}")

        assert fetched.status_code == 200
        assert fetched.json()["id"] == order["id"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_rejects_non_positive_amount(
        self, client: httpx.AsyncClient, wallet: Wallet
    ) -> None:
        token = (await wallet_login(client, wallet))["token"]

        response = await client.post("/orders", json={"amount": 0}, headers=bearer(token))

        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_unknown_order(self, client: httpx.AsyncClient) -> None:
        response = await client.get(f"/orders/{uuid.uuid4()}")

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_malformed_id(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/orders/not-a-uuid")

        assert response.status_code == 422

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_order_paid_after_indexing(
        self,
        app: FastAPI,
        client: httpx.AsyncClient,
        fake_source: FakeEventSource,
        wallet: Wallet,
    ) -> None:
        """End to end: create, pay on chain, observe PAID."""
        token = (await wallet_login(client, wallet))["token"]
        order = (
            await client.post("/orders", json={"amount": 500}, headers=bearer(token))
        ).json()

        fake_source.script.append(
            EventPage(events=[payment_event(order["id"])], next_cursor=EventId("tx1", "0"))
        )
        await app.state.services.reconciler.run_cycle()

        response = await client.get(f"/orders/{order['id']}")

        assert response.json()["status"] == "PAID"


class TestAdminRoutes:
    """Test suite for /admin routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_indexer_status(self, client: httpx.AsyncClient, wallet: Wallet) -> None:
        token = (await wallet_login(client, wallet))["token"]

        response = await client.get("/admin/indexer", headers=bearer(token))

        assert response.status_code == 200
        assert response.json()["enabled"] is True
        assert response.json()["module"] == "payment"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_indexer_status_requires_credentials(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/admin/indexer")

        assert response.status_code == 400

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_recent_events_descending(
        self, client: httpx.AsyncClient, fake_source: FakeEventSource, wallet: Wallet
    ) -> None:
        """Inspection reads newest-first without moving the indexer cursor."""
        token = (await wallet_login(client, wallet))["token"]
        order_id = uuid.uuid4()
        bad = payment_event(order_id, event_seq="1")
        bad["parsedJson"]["ref_id"] = "garbage"
        fake_source.script.append(
            EventPage(events=[bad, payment_event(order_id)], next_cursor=EventId("tx1", "0"))
        )

        response = await client.get("/admin/events/recent?limit=5", headers=bearer(token))

        assert response.status_code == 200
        body = response.json()
        assert body["order"] == "descending"
        assert body["order_ids"] == [None, str(order_id)]
        assert fake_source.calls[0]["page_size"] == 5
        assert fake_source.calls[0]["order"].descending is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_recent_events_limit_bounds(
        self, client: httpx.AsyncClient, wallet: Wallet
    ) -> None:
        token = (await wallet_login(client, wallet))["token"]

        response = await client.get("/admin/events/recent?limit=500", headers=bearer(token))

        assert response.status_code == 422


class TestMonitoringRoutes:
    """Test suite for health and metrics routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_probes(self, client: httpx.AsyncClient) -> None:
        assert (await client.get("/health/live")).json()["status"] == "alive"
        assert (await client.get("/health/ready")).status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "indexer_events_fetched_total" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"]
        assert response.json()["indexing_enabled"] is True


class TestIndexerShutdown:
    """Test suite for stopping the background indexer."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_graceful_stop(self, app: FastAPI) -> None:
        reconciler = app.state.services.reconciler
        task = asyncio.create_task(reconciler.start())
        await asyncio.sleep(0.02)

        await stop_indexer(reconciler, task, timeout=2)

        assert task.done()
        assert not task.cancelled()
        assert reconciler.running is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stuck_indexer_is_cancelled(self, mocker: Any) -> None:
        """A task that ignores stop() is cancelled once the timeout passes."""
        reconciler = mocker.Mock()

        async def stuck() -> None:
            await asyncio.Event().wait()

        task = asyncio.create_task(stuck())

        await stop_indexer(reconciler, task, timeout=0.05)

        reconciler.stop.assert_called_once()
        assert task.cancelled()
