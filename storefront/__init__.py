"""Storefront backend: cart allocation, catalog merge and vendor -> CMS sync."""

__version__ = "1.0.0"
