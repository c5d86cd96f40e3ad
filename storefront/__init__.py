"""Multi-tenant storefront catalog: users, merchants, products and variants."""

__version__ = "0.1.0"
