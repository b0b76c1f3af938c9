"""Clients for the NASA open APIs and the ISS position feed."""

from nasa_gateway.upstream.client import NasaClient

__all__ = ["NasaClient"]
