"""Pharmacy storefront API: catalog, carts, auth and the HTTP surface."""

__version__ = "1.0.0"
