"""
Service layer: typed reads and validated writes over the key-value store.

Services take the store (and read cache) explicitly; the blueprints obtain them
through portfolio_status.extensions.
"""

from .portfolio import PortfolioService  # noqa: F401
from .users import UserDirectory  # noqa: F401
from .view_builder import RebuildResult, rebuild_portfolio_status_view  # noqa: F401
