"""FastAPI application and routes."""
from .main import create_app
from .schemas import (
    CreateOrderRequest,
    LoginRequest,
    LoginResponse,
    OrderResponse,
    ZkLoginVerifyRequest,
)

__all__ = [
    "create_app",
    "CreateOrderRequest",
    "LoginRequest",
    "LoginResponse",
    "OrderResponse",
    "ZkLoginVerifyRequest",
]
