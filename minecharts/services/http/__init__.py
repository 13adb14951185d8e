"""Outbound HTTP client service."""

from minecharts.services.http.client import HTTPClientManager

__all__ = ["HTTPClientManager"]
