"""
Service wiring and FastAPI dependencies.

All collaborators are built once from an explicit Settings value and hung off
``app.state.services``; handlers receive them through ``Depends``.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from suipay.auth import (
    Claims,
    IdentityIssuer,
    IdentityVerifier,
    SaltStore,
    ZkIdentityDeriver,
)
from suipay.config import Settings
from suipay.core.orders import OrderStore
from suipay.core.reconciler import Reconciler
from suipay.integrations.sui_client import EventSource, SuiEventSource
from suipay.monitoring.health import HealthCheck


@dataclass
class Services:
    """Everything a request handler or the indexer needs."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    order_store: OrderStore
    salt_store: SaltStore
    issuer: IdentityIssuer
    verifier: IdentityVerifier
    deriver: ZkIdentityDeriver
    health_check: HealthCheck
    event_source: Optional[EventSource] = None
    reconciler: Optional[Reconciler] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        event_source: Optional[EventSource] = None,
    ) -> "Services":
        """
        Wire services from settings.

        The event source and reconciler exist only when indexing is enabled.
        """
        salt_store = SaltStore(session_factory)

        reconciler = None
        if settings.indexing_enabled:
            event_source = event_source or SuiEventSource.from_settings(settings)
            reconciler = Reconciler.from_settings(settings, event_source, session_factory)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            order_store=OrderStore(session_factory),
            salt_store=salt_store,
            issuer=IdentityIssuer.from_settings(settings),
            verifier=IdentityVerifier.from_settings(settings),
            deriver=ZkIdentityDeriver.from_settings(settings, salt_store),
            health_check=HealthCheck(
                session_factory,
                event_source if isinstance(event_source, SuiEventSource) else None,
            ),
            event_source=event_source,
            reconciler=reconciler,
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_claims(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Claims:
    """
    Gate a route behind a bearer credential.

    Raises MissingCredentials or InvalidToken; both are rendered by the
    AuthError exception handler.
    """
    return get_services(request).verifier.verify_header(authorization)
