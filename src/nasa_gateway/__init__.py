"""Caching gateway and rover manifest synchronizer for the NASA open-data APIs."""

__version__ = "0.1.0"
