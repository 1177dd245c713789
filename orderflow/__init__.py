"""Orderflow: order approval, payment gating and fulfillment workflow."""

__version__ = "0.1.0"
