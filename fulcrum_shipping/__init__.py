"""Fulcrum Shipping: shipping offer resolution and carrier customization service."""

__version__ = "1.0.0"
