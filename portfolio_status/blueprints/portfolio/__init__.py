"""
Portfolio blueprint package (dashboard reads, status updates, store maintenance).
"""

from .routes import portfolio_bp  # noqa: F401
