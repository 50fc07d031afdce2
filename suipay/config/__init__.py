"""Configuration package for the SuiPay backend."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
