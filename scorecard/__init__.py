"""Vendor scorecard: rating consolidation and vendor performance engine."""

__version__ = "1.0.0"
