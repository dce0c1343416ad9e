"""Market Simulator - personality-driven agents trading against a constant-product pool."""

__version__ = "0.1.0"
