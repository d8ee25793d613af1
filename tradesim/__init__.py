"""Paper-trading portfolio service: trade execution and valuation."""

__version__ = "0.1.0"
