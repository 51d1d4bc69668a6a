"""
SipCoin receipt ingestion package.

Turns photographed purchase receipts into structured fields, scores them into
loyalty points, and credits the points to the owning user's balance.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
