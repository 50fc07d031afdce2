"""
API routes for authentication, orders, indexer inspection and monitoring.
"""
import uuid
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from suipay.auth import Claims, verify_personal_message
from suipay.auth.zklogin import SaltStoreError
from suipay.core.event_parser import EventParseError
from suipay.core.orders import OrderStoreError, OrderValidationError
from suipay.integrations.sui_client import EventFilter, EventOrder, EventSourceError
from suipay.monitoring.metrics import metrics

from .dependencies import Services, get_services, require_claims
from .schemas import (
    AuthErrorResponse,
    CreateOrderRequest,
    HealthCheckResponse,
    IndexerStatusResponse,
    LoginRequest,
    LoginResponse,
    OrderResponse,
    RecentEventsResponse,
    ZkLoginVerifyRequest,
)

logger = structlog.get_logger(__name__)

# Create routers
auth_router = APIRouter(prefix="/auth", tags=["auth"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])

AUTH_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": AuthErrorResponse, "description": "Missing credentials"},
    401: {"model": AuthErrorResponse, "description": "Invalid or expired token"},
}

MAX_RECENT_EVENTS = 200


@auth_router.post(
    "/login",
    response_model=LoginResponse,
    summary="Wallet login",
    description="Exchange a signed personal message for a bearer credential",
)
async def login(
    request: LoginRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Verify a wallet signature and issue a credential for its address.

    Raises InvalidSignature (401) or TokenSigningError (500).
    """
    address = verify_personal_message(request.address, request.message, request.signature)
    issued = services.issuer.issue(address)
    metrics.record_token_issued("wallet")

    logger.info("wallet_login_succeeded", sui_address=address)

    return {
        "token": issued.token,
        "sui_address": issued.subject,
        "expires_at": issued.expires_at.isoformat(),
    }


@auth_router.post(
    "/zklogin/verify",
    response_model=LoginResponse,
    summary="zkLogin",
    description="Exchange an identity provider token for a bearer credential",
)
async def zklogin_verify(
    request: ZkLoginVerifyRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Derive the caller's address from their identity token and persisted salt.

    Raises ZkLoginError (400) for malformed tokens or unprovisioned identities.
    """
    try:
        assertion = await services.deriver.read_assertion(request.jwt)
        if services.settings.zklogin_auto_provision_salt:
            await services.salt_store.provision(assertion.identity_key)
        address = await services.deriver.derive_with_stored_salt(assertion)
    except SaltStoreError as e:
        logger.error("zklogin_salt_store_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Salt storage unavailable",
        )

    issued = services.issuer.issue(address)
    metrics.record_token_issued("zklogin")

    logger.info("zklogin_succeeded", sui_address=address, iss=assertion.iss)

    return {
        "token": issued.token,
        "sui_address": issued.subject,
        "expires_at": issued.expires_at.isoformat(),
    }


@order_router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses=AUTH_RESPONSES,
    summary="Create an order",
    description="Create a PENDING order owned by the authenticated merchant",
)
async def create_order(
    request: CreateOrderRequest,
    claims: Claims = Depends(require_claims),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Create an order awaiting on-chain payment."""
    currency = request.currency or services.settings.default_currency

    try:
        order = await services.order_store.create(
            merchant=claims.sub,
            amount=request.amount,
            currency=currency,
        )
    except OrderValidationError as e:
        logger.warning("api_create_order_validation_error", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except OrderStoreError as e:
        logger.error("api_create_order_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Order creation failed",
        )

    return order.to_dict()


@order_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order",
    description="Retrieve an order and its payment status",
)
async def get_order(
    order_id: uuid.UUID,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Get order by ID."""
    try:
        order = await services.order_store.get(order_id)
    except OrderStoreError as e:
        logger.error("api_get_order_error", order_id=str(order_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve order",
        )

    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

    return order.to_dict()


@admin_router.get(
    "/indexer",
    response_model=IndexerStatusResponse,
    responses=AUTH_RESPONSES,
    summary="Indexer status",
    description="Current cursor and last cycle of the payment indexer",
)
async def indexer_status(
    claims: Claims = Depends(require_claims),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Report indexer state."""
    if services.reconciler is None:
        return {"enabled": False}
    return services.reconciler.status()


@admin_router.get(
    "/events/recent",
    response_model=RecentEventsResponse,
    responses=AUTH_RESPONSES,
    summary="Recent payment events",
    description=(
        "Most recent payment events, newest first. For manual inspection only; "
        "the indexer itself always reads in ascending order from its cursor."
    ),
)
async def recent_events(
    limit: int = Query(default=20, ge=1, le=MAX_RECENT_EVENTS),
    claims: Claims = Depends(require_claims),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Fetch the newest events without touching the indexer cursor."""
    if services.event_source is None or services.reconciler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Indexing is disabled",
        )

    event_filter: EventFilter = services.reconciler.event_filter
    try:
        page = await services.event_source.fetch_page(
            event_filter, None, limit, EventOrder.DESCENDING
        )
    except EventSourceError as e:
        logger.warning("api_recent_events_error", error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    order_ids: List[Optional[str]] = []
    for raw_event in page.events:
        try:
            order_ids.append(str(services.reconciler.parser.parse(raw_event).order_id))
        except EventParseError:
            order_ids.append(None)

    return {"order": EventOrder.DESCENDING.value, "events": page.events, "order_ids": order_ids}


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await services.health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await services.health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await services.health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
