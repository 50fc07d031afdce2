"""
Pydantic schemas for API request/response models.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

MAX_AMOUNT = 2**63 - 1


class LoginRequest(BaseModel):
    """Request schema for wallet login."""

    address: str = Field(..., min_length=1, description="Sui address of the signer")
    signature: str = Field(..., min_length=1, description="Base64 serialized wallet signature")
    message: str = Field(..., description="Personal message that was signed")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "address": "0x7b4a...e1",
                    "signature": "AL3f...==",
                    "message": "Sign in to SuiPay: 2026-10-19T10:00:00Z",
                }
            ]
        }
    }


class ZkLoginVerifyRequest(BaseModel):
    """Request schema for zkLogin."""

    jwt: str = Field(..., min_length=1, description="ID token returned by the identity provider")


class LoginResponse(BaseModel):
    """Response schema for both login flows."""

    token: str = Field(..., description="Bearer credential")
    sui_address: str = Field(..., description="Authenticated subject")
    expires_at: str = Field(..., description="Credential expiry (ISO 8601)")


class CreateOrderRequest(BaseModel):
    """Request schema for creating an order."""

    amount: int = Field(..., gt=0, le=MAX_AMOUNT, description="Amount in the smallest unit")
    currency: Optional[str] = Field(
        default=None, min_length=1, max_length=16, description="Currency code (default USDC)"
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Currencies are stored upper-case."""
        return v.strip().upper() if v is not None else None

    model_config = {
        "json_schema_extra": {"examples": [{"amount": 1000, "currency": "USDC"}]}
    }


class OrderResponse(BaseModel):
    """Response schema for an order."""

    id: str = Field(..., description="Order ID")
    merchant_address: str = Field(..., description="Merchant that created the order")
    amount: int = Field(..., description="Amount in the smallest unit")
    currency: str = Field(..., description="Currency code")
    status: str = Field(..., description="PENDING or PAID")
    created_at: Optional[str] = Field(default=None, description="Creation timestamp (ISO 8601)")


class IndexerStatusResponse(BaseModel):
    """Response schema for indexer status."""

    enabled: bool = Field(..., description="Whether a package id is configured")
    running: bool = Field(default=False, description="Whether the loop is running")
    package: Optional[str] = Field(default=None, description="Indexed package id")
    module: Optional[str] = Field(default=None, description="Indexed Move module")
    cursor: Optional[Dict[str, str]] = Field(default=None, description="Persisted cursor")
    last_cycle: Optional[Dict[str, Any]] = Field(default=None, description="Last cycle counters")
    last_cycle_at: Optional[str] = Field(default=None, description="Last cycle time (ISO 8601)")


class RecentEventsResponse(BaseModel):
    """Response schema for the recent-events inspection route."""

    order: str = Field(..., description="Always 'descending' for this route")
    events: List[Dict[str, Any]] = Field(..., description="Raw events, newest first")
    order_ids: List[Optional[str]] = Field(
        ..., description="Parsed order id per event (null when unparsable)"
    )


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class AuthErrorResponse(BaseModel):
    """Error body for authentication failures."""

    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable description")
