"""SuiPay merchant backend: on-chain payment reconciliation and identity."""

__version__ = "1.0.0"
