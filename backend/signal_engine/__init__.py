"""
Signal Engine

Technical-indicator engine over OHLCV series: primitives, derived indicators,
adaptive parameter resolution, failure-isolated aggregation and signal
classification, exposed as a service and a small HTTP API.
"""

__version__ = "0.1.0"
