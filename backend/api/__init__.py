"""API route handlers."""
from . import assets, currency, portfolio, prices

__all__ = ["assets", "currency", "portfolio", "prices"]
