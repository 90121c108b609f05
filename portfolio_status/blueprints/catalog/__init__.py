"""
Catalog blueprint package (countries, procedures, product types, products, statuses).
"""

from .routes import catalog_bp  # noqa: F401
